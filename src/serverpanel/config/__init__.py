"""Configuration management for serverpanel.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides for deployment values like
the game directory and the admin password.
"""

from serverpanel.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
