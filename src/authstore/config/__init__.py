"""
authstore Configuration Module

Provides centralized configuration management with:
- Environment-based settings loading
- Secure handling of secrets
"""

from authstore.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
