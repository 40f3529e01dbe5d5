"""Trip identifier normalization shared by static and realtime matching.

Two strategies live here and must not be mixed:

* permissive (``normalize_trip_id`` / ``trip_id_variants``): strips vendor
  prefixes and punctuation and expands into alternate spellings. Used to
  attach realtime predictions to scheduled stop times, where time-window
  checks downstream reject false positives.
* strict (``normalize_feed_trip_id``): removes only a numeric ``N#`` feed
  prefix. Used to resolve a trip to its route for user-facing labels.

Examples:
    "0#4930-11"       -> "4930-11"
    "agency:4930_11"  -> "4930_11"
    "X:Trip 12-00"    -> "trip12"
"""

from __future__ import annotations

import re
from functools import lru_cache

_FEED_PREFIX_RE = re.compile(r"^\d+#")
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9_.\-]")
_LEADING_SEP_RE = re.compile(r"^[\-_.]+")
_TRAILING_SEP_RE = re.compile(r"[\-_.]+$")
_ZERO_PADDING_RE = re.compile(r"[\-_.]0+$")
_ANY_SEP_RE = re.compile(r"[\-_.]")

_KNOWN_NAMESPACES = ("agency:", "trip:")
# A colon prefix longer than this is assumed to be part of the id itself
_MAX_NAMESPACE_LEN = 5


def normalize_trip_id(raw: str | None) -> str | None:
    """Normalize a trip id into a canonical lower-case matching key.

    Returns None when nothing usable remains; callers needing a key anyway
    should go through ``trip_id_variants``, which falls back to the raw id.
    """
    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None

    s = _FEED_PREFIX_RE.sub("", s, count=1)

    lower = s.lower()
    for namespace in _KNOWN_NAMESPACES:
        if lower.startswith(namespace):
            s = s[len(namespace) :]
            break
    else:
        colon = s.find(":")
        if 0 < colon <= _MAX_NAMESPACE_LEN:
            s = s[colon + 1 :]

    s = _DISALLOWED_RE.sub("", s.strip())
    s = _LEADING_SEP_RE.sub("", s)

    # "-0" removal can expose another trailing separator ("a-.0" -> "a-")
    while True:
        trimmed = _ZERO_PADDING_RE.sub("", _TRAILING_SEP_RE.sub("", s))
        if trimmed == s:
            break
        s = trimmed

    s = s.lower()
    return s or None


def trip_id_variants(raw: str | None) -> frozenset[str]:
    """Return every spelling under which ``raw`` may appear in another feed."""
    return frozenset(ordered_trip_id_variants(raw))


def ordered_trip_id_variants(raw: str | None) -> tuple[str, ...]:
    """Variants with the normalized key first, the rest sorted.

    Lookups that return the first hit iterate this instead of the set so the
    result does not depend on hash ordering.
    """
    if raw is None:
        return ()
    return _ordered_variants(raw)


@lru_cache(maxsize=65536)
def _ordered_variants(raw: str) -> tuple[str, ...]:
    norm = normalize_trip_id(raw)
    if norm is None:
        fallback = raw.strip().lower()
        return (fallback,) if fallback else ()

    out = {norm, _ANY_SEP_RE.sub("", norm)}
    if "-" in norm:
        out.add(norm.replace("-", "_"))
    if "_" in norm:
        out.add(norm.replace("_", "-"))
    if "." in norm:
        out.add(norm.replace(".", "-"))
        out.add(norm.replace(".", "_"))
        out.add(norm.replace(".", ""))
    out.discard("")
    out.discard(norm)
    return (norm, *sorted(out))


def normalize_feed_trip_id(raw: str | None) -> str | None:
    """Strict normalization: drop a numeric ``N#`` feed prefix, nothing else."""
    if raw is None:
        return None
    s = _FEED_PREFIX_RE.sub("", raw.strip(), count=1).strip()
    return s or None
