"""Token generation and hashing primitives."""

from authstore.security.tokens import generate_token, hash_token

__all__ = ["generate_token", "hash_token"]
