"""
authstore Infrastructure Layer

PostgreSQL access: connection management, codecs, repositories, and
the schema migration engine.
"""
