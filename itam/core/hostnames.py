"""Hostname normalisation helpers.

Hostnames arrive from spreadsheets, scanners and DNS with stray whitespace,
mixed case and sometimes a domain suffix. Hardware rows store the canonical
form, and lookups try every alias so ``pc-014.corp.local`` still finds
``PC-014``.
"""

from __future__ import annotations

import re
from typing import Iterable, List

__all__ = ["normalize_hostname", "hostname_aliases"]


_WHITESPACE_RE = re.compile(r"\s+")


def _strip_domain(value: str, domains: Iterable[str]) -> str:
    lowered = value.lower()
    for domain in domains:
        suffix = "." + domain.lower().lstrip(".")
        if lowered.endswith(suffix) and len(lowered) > len(suffix):
            return value[: -len(suffix)]
    return value


def normalize_hostname(raw: str | None, domains: Iterable[str] = ()) -> str | None:
    """Return the canonical hostname: no whitespace, no known domain, upper case."""

    if raw is None:
        return None
    cleaned = _WHITESPACE_RE.sub("", raw)
    if not cleaned:
        return None
    cleaned = _strip_domain(cleaned, domains)
    return cleaned.upper()


def hostname_aliases(raw: str | None, domains: Iterable[str] = ()) -> list[str]:
    """Return the spellings under which a hostname may have been stored."""

    if raw is None:
        return []
    cleaned = _WHITESPACE_RE.sub("", raw)
    if not cleaned:
        return []

    domains = list(domains)
    aliases: List[str] = []
    seen: set[str] = set()

    def add(candidate: str | None) -> None:
        if not candidate or candidate in seen:
            return
        seen.add(candidate)
        aliases.append(candidate)

    add(normalize_hostname(cleaned, domains))
    add(cleaned)
    add(cleaned.upper())
    add(cleaned.lower())
    short = _strip_domain(cleaned, domains)
    add(short)
    add(short.lower())
    return aliases
