"""Naming helpers shared by the generators."""

import keyword


def to_camel_case(name: str) -> str:
    """Convert ``snake_case`` (or already camel) names to ``CamelCase``."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def escape_identifier(name: str, reserved: frozenset[str] = frozenset()) -> str:
    """Append ``_`` to names that are Python keywords or otherwise taken."""
    if keyword.iskeyword(name) or name in reserved:
        return name + "_"
    return name
