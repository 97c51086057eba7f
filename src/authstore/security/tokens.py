"""
One-Time Token Primitives

Raw tokens are URL-safe random strings handed to the user exactly once.
Only their SHA-256 digest is stored, so a leaked table cannot be
replayed.

SECURITY: Never log raw tokens.
"""

import hashlib
import secrets

from authstore.domain.exceptions import TokenHashError


def generate_token(nbytes: int = 32) -> str:
    """
    Generate a cryptographically secure raw token.

    Args:
        nbytes: Random bytes before URL-safe base64 encoding

    Returns:
        URL-safe token string
    """
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    """
    One-way hash of a raw token.

    Returns:
        Hex SHA-256 digest

    Raises:
        TokenHashError: If the token is empty or cannot be encoded
    """
    if not isinstance(token, str) or not token:
        raise TokenHashError("token must be a non-empty string")
    try:
        encoded = token.encode("utf-8")
    except UnicodeEncodeError as e:
        raise TokenHashError(f"token is not valid UTF-8: {e.reason}") from e
    return hashlib.sha256(encoded).hexdigest()
