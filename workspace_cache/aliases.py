"""Derive lookup aliases from a display title.

Aliases are mechanical variants, not user-curated names. The singular/plural
step is a naive heuristic: "status" yields "statu", and that is accepted.
"""

import re

COMMON_SUFFIXES: tuple[str, ...] = ("database", "db", "table", "list", "tracker", "log")

_SUFFIX_PATTERN = re.compile(r"\s+(?:" + "|".join(COMMON_SUFFIXES) + r")$")


def normalize_title(title: str) -> str:
    """Lowercase and trim a title; used for exact-match lookups."""
    return title.lower().strip()


def strip_common_suffix(normalized: str) -> str:
    return _SUFFIX_PATTERN.sub("", normalized).rstrip()


def acronym(text: str) -> str:
    return "".join(word[0] for word in text.split())


def generate_aliases(title: str) -> list[str]:
    """Generate search aliases for a title.

    Deterministic for a given input. The returned list keeps insertion order
    and contains no duplicates; callers should only test membership.

    Example:
        >>> generate_aliases("Tasks Database")
        ['tasks database', 'tasks', 'tasks db', 'task', 'td']
    """
    aliases: dict[str, None] = {}

    def add(alias: str) -> None:
        if alias:
            aliases.setdefault(alias, None)

    normalized = normalize_title(title)
    add(normalized)

    stripped = strip_common_suffix(normalized)
    if stripped and stripped != normalized:
        add(stripped)
        add(f"{stripped} db")
        add(f"{stripped} database")
    else:
        stripped = normalized

    if stripped.endswith("s"):
        add(stripped[:-1])
    else:
        add(f"{stripped}s")

    # A single-word stripped form ("tasks") falls back to the full title ("td").
    source = stripped if len(stripped.split()) > 1 else normalized
    if len(source.split()) > 1:
        initials = acronym(source)
        if len(initials) >= 2:
            add(initials)

    return list(aliases)
