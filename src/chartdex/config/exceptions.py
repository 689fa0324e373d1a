"""Custom exceptions for configuration management."""


class ConfigError(Exception):
    """Raised when configuration data is missing, malformed, or invalid."""
