from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from rental_intake.modules.extraction.schemas import Platform

_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

_PLATFORM_KEYWORDS: tuple[tuple[str, Platform], ...] = (
    ("airbnb", Platform.AIRBNB),
    ("booking", Platform.BOOKING),
    ("expedia", Platform.EXPEDIA),
    ("vrbo", Platform.VRBO),
    ("homeaway", Platform.VRBO),
    ("direct", Platform.DIRECT),
    ("direto", Platform.DIRECT),
    ("direta", Platform.DIRECT),
    ("directo", Platform.DIRECT),
    ("manual", Platform.DIRECT),
)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%d-%m-%y",
    "%d/%m/%y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def clean_text(value: object, *, max_len: int = 200) -> str | None:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return None
    s = re.sub(r"\s+", " ", str(value).replace("\u202f", " ").replace("\xa0", " ")).strip()
    if not s:
        return None
    return s[:max_len]


def parse_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = clean_text(value, max_len=40)
    if not raw:
        return None
    # ISO timestamps ("2025-07-07T15:00:00")
    if "T" in raw and re.match(r"^\d{4}-\d{2}-\d{2}T", raw):
        raw = raw.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value: object) -> Decimal | None:
    """Parse a monetary amount in either `1.234,56` or `1,234.56` notation."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            return Decimal(str(value)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            return None
    s = str(value or "").strip()
    if not s:
        return None
    negative = s.startswith("-") or (s.startswith("(") and s.endswith(")"))
    s = s.replace("\u202f", " ").replace("\xa0", " ")
    s = re.sub(r"[^0-9,.' ]", "", s)
    s = s.replace(" ", "").replace("'", "")
    if not s or not any(ch.isdigit() for ch in s):
        return None

    if "," in s and "." in s:
        decimal_sep = "," if s.rfind(",") > s.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        normalized = s.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif "," in s or "." in s:
        sep = "," if "," in s else "."
        if s.count(sep) > 1:
            normalized = s.replace(sep, "")
        else:
            idx = s.rfind(sep)
            digits_after = len(s) - idx - 1
            if digits_after == 3 and 0 < len(s[:idx]) <= 3:
                normalized = s.replace(sep, "")
            else:
                normalized = s.replace(sep, ".")
    else:
        normalized = s

    try:
        amount = Decimal(normalized).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None
    return -amount if negative else amount


def parse_int(value: object, *, minimum: int = 0, maximum: int = 1000) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        n = int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return None
    if n < minimum or n > maximum:
        return None
    return n


def normalize_platform(value: object) -> Platform | None:
    raw = clean_text(value, max_len=80)
    if not raw:
        return None
    lowered = raw.lower()
    for keyword, platform in _PLATFORM_KEYWORDS:
        if keyword in lowered:
            return platform
    return Platform.OTHER


def is_plausible_email(value: str | None) -> bool:
    return bool(value and _EMAIL_RE.match(value))
