"""Identifier casing for generated code.

Maps Postgres identifiers (``user_status``, ``FindUserByID``, enum labels)
to Python identifiers. Deterministic: the same input always gives the same
output for a given set of acronyms.
"""
from __future__ import annotations

import keyword
import re

DEFAULT_ACRONYMS: dict[str, str] = {
    "id": "ID",
    "ids": "IDs",
    "json": "JSON",
    "uuid": "UUID",
    "url": "URL",
    "api": "API",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_NON_WORD = re.compile(r"[^0-9A-Za-z]+")


class Caser:
    """Converts database identifiers into Python identifiers."""

    def __init__(self, acronyms: dict[str, str] | None = None) -> None:
        self._acronyms = dict(DEFAULT_ACRONYMS)
        if acronyms:
            self.add_acronyms(acronyms)

    def add_acronym(self, word: str, replacement: str) -> None:
        """Render ``word`` as ``replacement`` in UpperCamel names, e.g. ios -> IOS."""
        self._acronyms[word.lower()] = replacement

    def add_acronyms(self, acronyms: dict[str, str]) -> None:
        for word, replacement in acronyms.items():
            self.add_acronym(word, replacement)

    def to_upper_camel(self, name: str) -> str:
        """``user_status`` -> ``UserStatus``; ``device_id`` -> ``DeviceID``."""
        words = _split_words(name)
        if not words:
            return ""
        out = "".join(self._acronyms.get(w.lower(), w[:1].upper() + w[1:].lower()) for w in words)
        if out[0].isdigit():
            out = "_" + out
        return out

    def to_snake(self, name: str) -> str:
        """``FindUserByID`` -> ``find_user_by_id``. Returns "" for no word characters."""
        out = "_".join(w.lower() for w in _split_words(name))
        return _safe_identifier(out)

    def to_upper_snake(self, name: str) -> str:
        """``active`` -> ``ACTIVE``. Used for enum member names."""
        return _safe_identifier("_".join(w.upper() for w in _split_words(name)))


def _split_words(name: str) -> list[str]:
    words = []
    for part in _NON_WORD.split(name):
        if part:
            words.extend(p for p in _CAMEL_BOUNDARY.split(part) if p)
    return words


def _safe_identifier(name: str) -> str:
    if not name:
        return ""
    if name[0].isdigit():
        name = "_" + name
    if keyword.iskeyword(name):
        name += "_"
    return name
