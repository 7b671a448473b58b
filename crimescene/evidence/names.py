"""Display-name helpers for evidence shown on the checklist."""
from __future__ import annotations

import re
from typing import Optional

_FINGERPRINT_NAME = re.compile(r"^Fingerprint(?: \((?P<number>[^)]+)\))?$")


def clean_object_name(name: str) -> str:
    cleaned = name.replace("(Clone)", "").replace("_", " ").strip()
    cleaned = " ".join(cleaned.split())
    if not cleaned:
        return cleaned
    return cleaned[0].upper() + cleaned[1:]


def is_fingerprint_name(name: str) -> bool:
    return _FINGERPRINT_NAME.match(name) is not None


def fingerprint_display_name(name: str, parent_name: Optional[str] = None) -> str:
    if parent_name:
        parent = clean_object_name(parent_name)
        if parent:
            return f"{parent} Fingerprint"
    match = _FINGERPRINT_NAME.match(name)
    if match and match.group("number"):
        return f"Fingerprint {match.group('number')}"
    start = name.find("(")
    end = name.find(")")
    if 0 <= start < end - 1:
        return f"Fingerprint {name[start + 1:end]}"
    return "Fingerprint"


__all__ = ["clean_object_name", "fingerprint_display_name", "is_fingerprint_name"]
