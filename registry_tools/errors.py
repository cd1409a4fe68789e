"""Error hierarchy shared by the registry tools."""

from __future__ import annotations


class RegistryToolsError(Exception):
    """Base error for failures raised by the registry tools."""


class ConfigurationError(RegistryToolsError):
    """Raised when a required setting is missing or blank."""


class CredentialsError(ConfigurationError):
    """Raised when the service account credentials are missing or invalid."""


class NotFoundError(RegistryToolsError):
    """Raised when a category or key is not present in the Registry sheet."""


class AccessError(RegistryToolsError):
    """Raised when the Sheets API cannot be reached or refuses access."""


class SchemaError(RegistryToolsError):
    """Raised when a sheet header lacks a column the operation depends on."""


__all__ = [
    "AccessError",
    "ConfigurationError",
    "CredentialsError",
    "NotFoundError",
    "RegistryToolsError",
    "SchemaError",
]
