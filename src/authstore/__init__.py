"""
authstore - PostgreSQL storage for identity, session, token and cache records

This package provides the relational storage adapter used by the
identity framework, and the per-module schema migration engine that
prepares the database for it.
"""

__version__ = "0.1.0"
__author__ = "authstore maintainers"
