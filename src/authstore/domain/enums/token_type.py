"""
Token and Selector Enumerations

Closed sets of values that are written to, or interpolated into,
SQL. Anything outside these enums is rejected before a query is built.
"""

from enum import StrEnum


class TokenType(StrEnum):
    """
    Purpose of a one-time token.

    Stored verbatim in ``one_time_token.token_type``.
    """

    PASSWORD_RESET = "password_reset"
    """Reset a forgotten password."""

    EMAIL_CONFIRMATION = "email_confirmation"
    """Confirm ownership of an email address."""

    PHONE_CONFIRMATION = "phone_confirmation"
    """Confirm ownership of a phone number."""

    MAGIC_LINK = "magic_link"
    """Passwordless sign-in link."""


class UserSelector(StrEnum):
    """
    Unique user columns a caller may select a row by.

    The value is the column name used in the generated predicate.
    """

    ID = "id"
    EMAIL = "email"
    PHONE_NUMBER = "phone_number"
