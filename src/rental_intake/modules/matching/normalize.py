from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9 ]")
_SPACES_RE = re.compile(r" {2,}")


def normalize(text: str | None) -> str:
    """
    Canonical comparison form of a free-text name.

    Lower-cases, strips diacritics (á→a, ç→c), folds newlines and whitespace runs
    into single spaces, drops anything outside ``[a-z0-9 ]`` and trims.
    ``normalize(normalize(x)) == normalize(x)`` for any input.
    """
    if not text:
        return ""
    s = unicodedata.normalize("NFKD", str(text).lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch)).lower()
    s = _WHITESPACE_RE.sub(" ", s)
    s = _DISALLOWED_RE.sub("", s)
    s = _SPACES_RE.sub(" ", s)
    return s.strip()


def tokens(text: str | None, *, min_length: int = 3) -> list[str]:
    return [t for t in normalize(text).split(" ") if len(t) >= min_length]


# Operator shorthand for building and street words, keyed by normalized token.
ABBREVIATIONS = {
    "apt": "apartamento",
    "apto": "apartamento",
    "ed": "edificio",
    "edf": "edificio",
    "prd": "predio",
    "r": "rua",
    "av": "avenida",
    "pc": "praca",
    "lg": "largo",
    "qrt": "quarto",
    "coz": "cozinha",
}


def expand_abbreviations(text: str | None) -> str:
    """Normalize ``text`` and spell out whole-word abbreviations ("Av." becomes "avenida")."""
    return " ".join(ABBREVIATIONS.get(t, t) for t in normalize(text).split(" ") if t)
