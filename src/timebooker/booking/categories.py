"""Category alias sets and label matching.

A canonical category (``Remote``, ``Office``) is shown by the portal under
several display labels.  Matching is case-insensitive and
whitespace-normalized, exact before substring.  Among substring hits an
alias found as whole words beats one buried inside a longer word, and a
longer alias beats a shorter one, so ``"Home Office"`` resolves to
``Remote`` even though it contains ``"Office"``, and ``"Homeoffice
Stuttgart"`` stays ``Remote`` although ``"Office Stuttgart"`` is the longer
alias it contains.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum

from timebooker.exceptions import ConfigurationError
from timebooker.settings.config import CategorySettings

logger = logging.getLogger(__name__)


def normalize_text(value: str | None) -> str:
    """Collapse whitespace and casefold."""
    return " ".join((value or "").split()).casefold()


def _whole_word(needle: str, text: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", text) is not None


def contains_any(text: str | None, vocabulary: Sequence[str]) -> bool:
    """True if the normalized *text* contains any normalized vocabulary word."""
    norm = normalize_text(text)
    if not norm:
        return False
    return any(normalize_text(word) in norm for word in vocabulary if word)


class MatchKind(IntEnum):
    """How well a label matches a category."""

    NONE = 0
    SUBSTRING = 1
    EXACT = 2


@dataclass(frozen=True)
class LabelMatch:
    """Best category claim for a label."""

    category: str
    alias: str
    kind: MatchKind


class CategoryAliasSet:
    """Mapping from canonical category name to ordered display-label variants.

    Args:
        aliases: ``{category: [alias, ...]}``.  Order is preserved and
            determines search order.

    Raises:
        ConfigurationError: If no category is given or any category has no
            aliases.
    """

    def __init__(self, aliases: Mapping[str, Sequence[str]]) -> None:
        if not aliases:
            raise ConfigurationError("No categories configured")
        self._aliases: dict[str, tuple[str, ...]] = {}
        for category, labels in aliases.items():
            kept = tuple(label.strip() for label in labels if label and label.strip())
            if not kept:
                raise ConfigurationError(f"Category {category!r} has no aliases configured")
            self._aliases[category] = kept

    @classmethod
    def from_settings(cls, settings: CategorySettings) -> CategoryAliasSet:
        return cls(settings.aliases)

    @property
    def categories(self) -> list[str]:
        return list(self._aliases)

    def aliases_for(self, category: str) -> list[str]:
        """Return the ordered aliases of *category*.

        Raises:
            ConfigurationError: If the category is unknown.
        """
        try:
            return list(self._aliases[category])
        except KeyError:
            known = ", ".join(self._aliases)
            raise ConfigurationError(f"Unknown category {category!r} (known: {known})") from None

    def canonical(self, name: str) -> str:
        """Resolve a user-supplied category name case-insensitively."""
        wanted = normalize_text(name)
        for category in self._aliases:
            if normalize_text(category) == wanted:
                return category
        known = ", ".join(self._aliases)
        raise ConfigurationError(f"Unknown category {name!r} (known: {known})")

    def classify(self, label: str | None) -> LabelMatch | None:
        """Return the category that best claims *label*, or ``None``.

        Exact alias equality wins outright.  Otherwise an alias standing as
        whole words in the label beats one embedded in a longer word, then
        the longest alias wins; ties go to the earlier category.
        """
        norm = normalize_text(label)
        if not norm:
            return None

        for category, labels in self._aliases.items():
            for alias in labels:
                if normalize_text(alias) == norm:
                    return LabelMatch(category, alias, MatchKind.EXACT)

        best: LabelMatch | None = None
        best_rank = (False, 0)
        for category, labels in self._aliases.items():
            for alias in labels:
                norm_alias = normalize_text(alias)
                if not norm_alias or norm_alias not in norm:
                    continue
                rank = (_whole_word(norm_alias, norm), len(norm_alias))
                if rank > best_rank:
                    best = LabelMatch(category, alias, MatchKind.SUBSTRING)
                    best_rank = rank
        return best

    def match(self, label: str | None, category: str) -> MatchKind:
        """How *label* matches *category* (``NONE`` if another category claims it)."""
        self.aliases_for(category)
        claim = self.classify(label)
        if claim is None or claim.category != category:
            return MatchKind.NONE
        return claim.kind

    def matches(self, label: str | None, category: str) -> bool:
        return self.match(label, category) != MatchKind.NONE
