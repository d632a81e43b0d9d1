"""Display-only masking of whitelist identifiers"""
from typing import Optional


def mask_identifier(identifier: Optional[str]) -> str:
    """
    Emails keep the first two characters of the local part: 'ju***@example.com'.
    Anything else keeps the last four characters: '***5678'.
    """
    if not identifier:
        return ""
    value = identifier.strip()
    if "@" in value:
        local, _, domain = value.partition("@")
        return f"{local[:2]}***@{domain}"
    if len(value) <= 4:
        return "***"
    return f"***{value[-4:]}"
