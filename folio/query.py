"""
Search, tag filter and sort over a list of records.

Records come in several historical shapes: the text may live in
``content``, ``body`` or ``excerpt``; the timestamp may be a number in
``createdAt`` or a date string in ``date``, ``publishedAt`` or ``createdAt``;
``tags`` may be missing or not a list at all. Everything here reads through
the small accessors below, so none of those variants ever raises.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, Mapping, Sequence

NEWEST = "newest"
OLDEST = "oldest"
SORT_ORDERS = (NEWEST, OLDEST)

CONTENT_FIELDS = ("content", "body", "excerpt")
DATE_FIELDS = ("date", "publishedAt", "createdAt")

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


###############################################################################
# Accessors
###############################################################################
def record_tags(rec: Mapping) -> list:
    tags = rec.get("tags")
    return list(tags) if isinstance(tags, list) else []


def primary_text(rec: Mapping) -> str:
    """First non-empty of content / body / excerpt."""
    for field in CONTENT_FIELDS:
        val = rec.get(field)
        if val:
            return str(val)
    return ""


def parse_date(value) -> float | None:
    """
    Epoch milliseconds for a date-like string, or None.
    Accepts ISO-8601 (``Z`` suffix too), bare ``YYYY-MM-DD`` and RFC 2822.
    Naive values are read as UTC.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    dt: datetime | None = None
    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        dt = datetime.fromisoformat(iso)
    except ValueError:
        if _DATE_ONLY_RE.match(text):
            return None  # looked like a date but is not a real one
        try:
            dt = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp() * 1000


def record_timestamp(rec: Mapping) -> float:
    created = rec.get("createdAt")
    if isinstance(created, (int, float)) and not isinstance(created, bool):
        return created
    for field in DATE_FIELDS:
        ts = parse_date(rec.get(field))
        if ts is not None:
            return ts
    return 0


###############################################################################
# Derivation
###############################################################################
def matches_search(rec: Mapping, needle: str) -> bool:
    """*needle* must already be trimmed and case-folded."""
    if not needle:
        return True
    if needle in str(rec.get("title") or "").casefold():
        return True
    if needle in primary_text(rec).casefold():
        return True
    return any(
        needle in t.casefold() for t in record_tags(rec) if isinstance(t, str)
    )


def has_all_tags(rec: Mapping, selected: Iterable[str]) -> bool:
    tags = record_tags(rec)
    return all(t in tags for t in selected)


def derive(
    records: Iterable[Mapping],
    search_text: str | None = "",
    selected_tags: Sequence[str] | None = (),
    sort_order: str = NEWEST,
) -> list:
    """
    Filtered and sorted view of *records*:

    1. keep records whose title, main text or any tag contains *search_text*
       (case-insensitive; blank search keeps everything)
    2. keep records carrying **every** tag in *selected_tags*
    3. sort by timestamp, newest first for ``"newest"``, oldest first
       otherwise; ties keep their original order
    """
    needle = (search_text or "").strip().casefold()
    selected = list(selected_tags or ())

    out = [r for r in records if matches_search(r, needle)]
    if selected:
        out = [r for r in out if has_all_tags(r, selected)]

    return sorted(out, key=record_timestamp, reverse=sort_order == NEWEST)


def all_tags(records: Iterable[Mapping]) -> list:
    """Every distinct tag, in first-seen order."""
    seen: dict = {}
    for rec in records:
        for t in record_tags(rec):
            try:
                seen.setdefault(t, None)
            except TypeError:  # unhashable junk in a legacy tags list
                continue
    return list(seen)


###############################################################################
# Input helpers
###############################################################################
def toggle_tag(selected: Sequence[str], tag: str) -> list[str]:
    if tag in selected:
        return [t for t in selected if t != tag]
    return [*selected, tag]


def parse_tags(text: str | None) -> list[str]:
    """``"a, b,,a"`` → ``["a", "b"]``."""
    out: list[str] = []
    for part in (text or "").split(","):
        tag = part.strip()
        if tag and tag not in out:
            out.append(tag)
    return out


def normalize_sort(value: str | None) -> str:
    return value if value in SORT_ORDERS else NEWEST
