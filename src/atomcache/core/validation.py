"""
Input validation utilities for atomcache.

Provides validation functions for store keys, SQL identifiers and payload
sizes, so that nothing unsafe reaches a storage backend.
"""

import re

from atomcache.core.exceptions import ValidationError

# SQLite table names are interpolated into statements, so they must be plain identifiers
_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Maximum atom content size (10 MB)
MAX_ATOM_SIZE = 10 * 1024 * 1024


def validate_key(key: str) -> str:
    """Validate a store key.

    Args:
        key: Key to validate.

    Returns:
        The key, unchanged.

    Raises:
        ValidationError: If the key is empty, not a string or contains NUL.
    """
    if not isinstance(key, str):
        raise ValidationError("key", repr(key), "Key must be a string")

    if not key:
        raise ValidationError("key", "", "Key cannot be empty")

    if "\x00" in key:
        raise ValidationError("key", repr(key), "Key contains null bytes")

    return key


def validate_identifier(name: str, field: str = "table_name") -> str:
    """Validate an SQL identifier such as a table name.

    Args:
        name: Identifier to validate.
        field: Name of the configuration field, for error reporting.

    Returns:
        The identifier, unchanged.

    Raises:
        ValidationError: If the identifier is not a plain SQL identifier.
    """
    if not name:
        raise ValidationError(field, "", "Identifier cannot be empty")

    if len(name) > 64:
        raise ValidationError(field, name[:30] + "...", "Identifier exceeds 64 characters")

    if not _IDENTIFIER_PATTERN.match(name):
        raise ValidationError(
            field,
            name,
            "Identifier must start with a letter or underscore "
            "and contain only alphanumerics and underscores",
        )

    return name


def validate_atom_size(
    size: int | None,
    max_size: int = MAX_ATOM_SIZE,
) -> None:
    """Validate that a payload size is within acceptable limits.

    Args:
        size: The payload size in bytes (may be None when unknown).
        max_size: Maximum allowed size in bytes.

    Raises:
        ValidationError: If the payload is too large.
    """
    if size is not None and size > max_size:
        size_mb = size / (1024 * 1024)
        max_mb = max_size / (1024 * 1024)
        raise ValidationError(
            "content_size",
            f"{size_mb:.1f} MB",
            f"Content exceeds maximum size of {max_mb:.0f} MB",
        )
