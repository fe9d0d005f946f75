"""Scope classification: which markets count toward a scoped portfolio.

A scope is a pair of pattern sets matched case-insensitively against a
record's slug, event slug and title. Exclusions are checked first so that
known false positives (a title that merely contains an inclusion keyword)
never leak into the scope. A record that matches nothing is out of scope.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from .errors import InvalidArgument


class Classifiable(Protocol):
    """Anything carrying market text metadata (trades, snapshots, activity)."""

    slug: str
    title: str
    event_slug: str


def _compile(patterns: Sequence[str]) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


@dataclass(frozen=True)
class ScopeDefinition:
    """Named subset of markets.

    ``exclude_patterns`` are regexes searched in slug, event slug and title.
    ``include_patterns`` are regexes searched in slug and event slug.
    ``include_keywords`` are regexes searched in the title.
    A scope with no inclusion rules at all includes everything not excluded.
    """

    name: str
    include_patterns: tuple[str, ...] = ()
    include_keywords: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    _include: tuple[re.Pattern, ...] = field(init=False, repr=False, compare=False)
    _keywords: tuple[re.Pattern, ...] = field(init=False, repr=False, compare=False)
    _exclude: tuple[re.Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_include", _compile(self.include_patterns))
        object.__setattr__(self, "_keywords", _compile(self.include_keywords))
        object.__setattr__(self, "_exclude", _compile(self.exclude_patterns))

    @property
    def includes_everything(self) -> bool:
        return not self.include_patterns and not self.include_keywords


def _text_fields(record: Classifiable) -> tuple[str, str, str]:
    slug = (getattr(record, "slug", "") or "").lower()
    event_slug = (getattr(record, "event_slug", "") or "").lower()
    title = (getattr(record, "title", "") or "").lower()
    return slug, event_slug, title


def is_in_scope(record: Classifiable, scope: ScopeDefinition) -> bool:
    """Return True when ``record`` belongs to ``scope``."""
    slug, event_slug, title = _text_fields(record)

    for pattern in scope._exclude:
        if pattern.search(slug) or pattern.search(event_slug) or pattern.search(title):
            return False

    if scope.includes_everything:
        return True

    for pattern in scope._include:
        if pattern.search(slug) or pattern.search(event_slug):
            return True
    for pattern in scope._keywords:
        if pattern.search(title):
            return True
    return False


def filter_scope(records: Sequence, scope: ScopeDefinition) -> list:
    """Keep the records in ``scope``, preserving order."""
    if scope.includes_everything and not scope.exclude_patterns:
        return list(records)
    return [record for record in records if is_in_scope(record, scope)]


# Per-game rules for the four supported esports titles. Order matters for
# classify_game: the first game whose rules match wins.
_GAME_RULES: tuple[tuple[str, tuple[str, ...], tuple[str, ...]], ...] = (
    (
        "CS2",
        (r"^cs2-", r"^cs-go-", r"^csgo-", r"^counter-strike"),
        (r"counter-strike", r"counter strike", r"cs2", r"cs:go", r"csgo"),
    ),
    (
        "LoL",
        (r"^lol-", r"^league-of-legends-"),
        (r"league of legends", r"\blol\b"),
    ),
    (
        "Dota 2",
        (r"^dota2-", r"^dota-2-", r"^dota-"),
        (r"dota 2", r"dota2", r"dota"),
    ),
    (
        "Valorant",
        (r"^valorant-", r"^vct-"),
        (r"valorant", r"\bvct\b"),
    ),
)

# Titles/slugs that contain a game keyword by accident.
_ESPORTS_EXCLUSIONS = (
    r"lollapalooza",
    r"\blollipop",
    r"anecdota",
)

ALL_SCOPE = ScopeDefinition(name="all")

ESPORTS_SCOPE = ScopeDefinition(
    name="esports",
    include_patterns=tuple(p for _, slugs, _ in _GAME_RULES for p in slugs),
    include_keywords=tuple(k for _, _, keywords in _GAME_RULES for k in keywords),
    exclude_patterns=_ESPORTS_EXCLUSIONS,
)

_GAME_SCOPES = tuple(
    (
        game,
        ScopeDefinition(
            name=game,
            include_patterns=slugs,
            include_keywords=keywords,
            exclude_patterns=_ESPORTS_EXCLUSIONS,
        ),
    )
    for game, slugs, keywords in _GAME_RULES
)

BUILTIN_SCOPES = {scope.name: scope for scope in (ALL_SCOPE, ESPORTS_SCOPE)}


def get_scope(scope: "str | ScopeDefinition | None") -> ScopeDefinition:
    """Resolve a scope name (or pass a definition through).

    Raises:
        InvalidArgument: For an unknown scope name.
    """
    if isinstance(scope, ScopeDefinition):
        return scope
    name = (scope or "all").strip().lower()
    try:
        return BUILTIN_SCOPES[name]
    except KeyError:
        raise InvalidArgument(
            f"unknown scope {scope!r}; expected one of {sorted(BUILTIN_SCOPES)}"
        ) from None


def classify_game(record: Classifiable) -> Optional[str]:
    """Return the esports title a market belongs to, or None."""
    for game, scope in _GAME_SCOPES:
        if is_in_scope(record, scope):
            return game
    return None
