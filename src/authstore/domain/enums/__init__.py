"""Domain enums package."""

from authstore.domain.enums.token_type import TokenType, UserSelector

__all__ = ["TokenType", "UserSelector"]
