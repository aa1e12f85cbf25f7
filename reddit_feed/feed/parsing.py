"""Parsing of user-entered source lists."""

import re

_SEPARATORS = re.compile(r"[,;\n]+")
_PREFIX = re.compile(r"^/?r/", re.IGNORECASE)
_INVALID = re.compile(r"[^A-Za-z0-9_]")


def normalize_source_name(value: str) -> str:
    """
    Clean one source name.

    "/r/Pics/" → "Pics", "r/earth porn" → "earthporn"
    """
    cleaned = _PREFIX.sub("", value.strip())
    cleaned = cleaned.replace("/", "")
    return _INVALID.sub("", cleaned)


def dedupe_source_names(names: list[str]) -> list[str]:
    """Drop empties and case-insensitive duplicates, keeping first spelling."""
    seen: set[str] = set()
    result = []
    for name in names:
        key = name.lower()
        if not name or key in seen:
            continue
        seen.add(key)
        result.append(name)
    return result


def parse_source_names(text: str) -> list[str]:
    """
    Split free text into source names.

    Separators are commas, semicolons and newlines.

    >>> parse_source_names("r/pics, /r/aww;\\nEarthPorn, pics")
    ['pics', 'aww', 'EarthPorn']
    """
    if not text or not text.strip():
        return []
    return dedupe_source_names([normalize_source_name(p) for p in _SEPARATORS.split(text)])
