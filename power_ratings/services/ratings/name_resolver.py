"""Team name resolution across the four NCAAB vocabularies.

Canonical names are the preseason provider's spellings (KenPom). The
schedule feed (ESPN), the odds feed (The Odds API) and the secondary
ratings feed (Barttorvik) each spell teams their own way:
- Mascots: "Duke Blue Devils" → "Duke"
- State/Saint: "Michigan State" / "Michigan St." → "michigan st"
- Punctuation: "St. John's (NY)" → "st johns ny"

Resolution order (first hit wins):
1. Override index (operator-curated), if its target is a canonical key
2. Case-insensitive exact match
3. Normalized match
4. Containment of normalized names (shorter name longer than 2 chars)
5. First raw token identical and longer than 3 chars
Overrides always outrank heuristics.
"""
import json
import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CORPUS_PATH = Path(__file__).parent.parent.parent / "data" / "mascots.json"

SAINT_STATE_TOKENS = {"state", "st", "saint"}

PUNCTUATION_PATTERN = re.compile(r"[.'’()]")

MIN_CONTAINMENT_LENGTH = 3
MIN_FIRST_TOKEN_LENGTH = 4


# =============================================================================
# NORMALIZATION
# =============================================================================

class MascotCorpus:
    """
    Trailing mascot words stripped during normalization.

    Loaded from JSON ({"mascots": [...]}) so vocabularies can be swapped
    without touching code; tests build one in memory.
    """

    def __init__(self, mascots: Iterable[str]):
        words = sorted(
            {PUNCTUATION_PATTERN.sub("", m).strip().lower() for m in mascots if m and m.strip()},
            key=lambda m: (-len(m), m)
        )
        self.mascots: Tuple[str, ...] = tuple(words)
        if words:
            alternatives = "|".join(re.escape(m) for m in words)
            self._pattern = re.compile(rf"\s+(?:{alternatives})$")
        else:
            self._pattern = None

    @classmethod
    def from_file(cls, path) -> "MascotCorpus":
        """
        Load a corpus from a JSON file.

        Args:
            path: Path to a JSON object with a "mascots" list, or a bare list

        Returns:
            MascotCorpus
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        mascots = data["mascots"] if isinstance(data, dict) else data
        logger.debug(f"Loaded {len(mascots)} mascots from {path}")
        return cls(mascots)

    @classmethod
    def default(cls) -> "MascotCorpus":
        return cls.from_file(DEFAULT_CORPUS_PATH)

    def strip(self, lowered_name: str) -> str:
        """Remove one trailing mascot from an already-lowercased name."""
        if self._pattern is None:
            return lowered_name
        return self._pattern.sub("", lowered_name)


def _strip_accents(name: str) -> str:
    normalized = unicodedata.normalize('NFD', name)
    return ''.join(c for c in normalized if unicodedata.category(c) != 'Mn')


def normalize_team_name(name: str, corpus: MascotCorpus) -> str:
    """
    Normalize a team name for comparison.

    Steps:
    1. Lowercase, remove accents, trim
    2. Remove periods, apostrophes and parentheses
    3. Strip one trailing mascot
    4. Collapse "State" / "St" / "Saint" to "st"
    5. Collapse whitespace

    Examples:
        >>> normalize_team_name("Duke Blue Devils", corpus)
        'duke'
        >>> normalize_team_name("Michigan State Spartans", corpus)
        'michigan st'
        >>> normalize_team_name("St. John's (NY)", corpus)
        'st johns ny'
    """
    if not name:
        return ""

    lowered = _strip_accents(name).lower().strip()
    lowered = ' '.join(lowered.split())
    lowered = PUNCTUATION_PATTERN.sub("", lowered)
    lowered = corpus.strip(lowered)

    tokens = ["st" if token in SAINT_STATE_TOKENS else token for token in lowered.split()]
    return ' '.join(tokens)


def _first_token(name: str) -> str:
    parts = name.lower().split()
    return parts[0] if parts else ""


# =============================================================================
# INDEXES
# =============================================================================

class RatingsIndex:
    """
    Canonical rating keys with precomputed lowercase and normalized forms.

    Iteration is in sorted order so heuristic matches are deterministic.
    """

    def __init__(self, team_names: Iterable[str], corpus: MascotCorpus):
        self.names: List[str] = sorted(set(team_names))
        self._by_lower: Dict[str, str] = {}
        for name in self.names:
            self._by_lower.setdefault(name.lower(), name)
        self.normalized: List[Tuple[str, str]] = [
            (normalize_team_name(name, corpus), name) for name in self.names
        ]

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def __len__(self) -> int:
        return len(self.names)

    def lookup(self, name: str) -> Optional[str]:
        """Case-insensitive exact lookup returning the canonical spelling."""
        if not name:
            return None
        return self._by_lower.get(name.strip().lower())


class OverrideIndex:
    """
    Lowercased source names and per-vocabulary aliases mapped to canonical names.

    Source names win over aliases when the two collide.
    """

    def __init__(self, overrides: Iterable = ()):
        self._targets: Dict[str, str] = {}
        self._market_aliases: Dict[str, str] = {}

        overrides = list(overrides)
        for override in overrides:
            for alias in (override.schedule_name, override.odds_api_name, override.secondary_name):
                if alias:
                    self._targets.setdefault(alias.strip().lower(), override.canonical_name)
        for override in overrides:
            self._targets[override.source_name.strip().lower()] = override.canonical_name

            if override.odds_api_name:
                for name in (override.source_name, override.schedule_name, override.canonical_name):
                    if name:
                        self._market_aliases.setdefault(name.strip().lower(), override.odds_api_name)

    @classmethod
    def from_mapping(cls, mapping: Dict[str, str]) -> "OverrideIndex":
        """Build an index from plain source → canonical pairs."""
        index = cls()
        for source, canonical in mapping.items():
            index._targets[source.strip().lower()] = canonical
        return index

    def __len__(self) -> int:
        return len(self._targets)

    def target(self, raw_name: str) -> Optional[str]:
        if not raw_name:
            return None
        return self._targets.get(raw_name.strip().lower())

    def market_name(self, raw_name: str) -> Optional[str]:
        """Odds-feed spelling an operator pinned for a schedule or canonical name."""
        if not raw_name:
            return None
        return self._market_aliases.get(raw_name.strip().lower())


# =============================================================================
# RESOLVER
# =============================================================================

@dataclass
class TeamMatch:
    """A resolved canonical name and the rule that produced it."""
    name: str
    method: str  # 'override', 'exact', 'normalized', 'containment', 'first_token'


class TeamNameResolver:
    """
    Resolve raw team names from any vocabulary to canonical rating keys.

    The resolver is pure: it holds only the mascot corpus, and callers pass
    the ratings and override indexes for the season they are working on.

    Example:
        resolver = TeamNameResolver(MascotCorpus.default())
        ratings = resolver.build_ratings_index(["Duke", "Michigan St."])
        resolver.resolve("Michigan State Spartans", ratings, OverrideIndex())
        # 'Michigan St.'
    """

    def __init__(self, corpus: Optional[MascotCorpus] = None):
        self.corpus = corpus or MascotCorpus.default()

    def normalize(self, name: str) -> str:
        return normalize_team_name(name, self.corpus)

    def build_ratings_index(self, team_names: Iterable[str]) -> RatingsIndex:
        return RatingsIndex(team_names, self.corpus)

    def resolve(
        self,
        raw_name: str,
        ratings_index: RatingsIndex,
        override_index: Optional[OverrideIndex] = None
    ) -> Optional[str]:
        """
        Resolve a raw name to a canonical key.

        Returns:
            Canonical name, or None when nothing matches
        """
        match = self.match(raw_name, ratings_index, override_index)
        return match.name if match else None

    def match(
        self,
        raw_name: str,
        ratings_index: RatingsIndex,
        override_index: Optional[OverrideIndex] = None
    ) -> Optional[TeamMatch]:
        """
        Resolve a raw name and report which rule matched.

        Args:
            raw_name: Team name as spelled by any source
            ratings_index: Canonical keys for the season
            override_index: Operator overrides (optional)

        Returns:
            TeamMatch, or None when no rule matches
        """
        if not raw_name or not raw_name.strip():
            return None
        raw_name = raw_name.strip()

        # 1. Override
        if override_index is not None:
            target = override_index.target(raw_name)
            if target:
                canonical = ratings_index.lookup(target)
                if canonical:
                    return TeamMatch(canonical, 'override')
                logger.warning(
                    f"Override for '{raw_name}' points at '{target}', which has no rating; "
                    f"falling back to heuristics"
                )

        # 2. Case-insensitive exact
        canonical = ratings_index.lookup(raw_name)
        if canonical:
            return TeamMatch(canonical, 'exact')

        # 3. Normalized equality
        normalized = self.normalize(raw_name)
        if normalized:
            for candidate_norm, name in ratings_index.normalized:
                if candidate_norm == normalized:
                    return TeamMatch(name, 'normalized')

            # 4. Containment
            for candidate_norm, name in ratings_index.normalized:
                if not candidate_norm:
                    continue
                shorter = min(len(candidate_norm), len(normalized))
                if shorter < MIN_CONTAINMENT_LENGTH:
                    continue
                if candidate_norm in normalized or normalized in candidate_norm:
                    return TeamMatch(name, 'containment')

        # 5. First token
        first = _first_token(raw_name)
        if len(first) >= MIN_FIRST_TOKEN_LENGTH:
            for name in ratings_index.names:
                if _first_token(name) == first:
                    return TeamMatch(name, 'first_token')

        return None

    def names_match(self, name1: str, name2: str) -> bool:
        """
        Loose comparison of two raw names from different feeds.

        Used only to pair a schedule game with its odds-feed fixture, never
        to resolve a rating key.
        """
        if not name1 or not name2:
            return False
        a = ' '.join(name1.lower().split())
        b = ' '.join(name2.lower().split())

        if a == b or a in b or b in a:
            return True

        first_a = _first_token(a)
        if len(first_a) >= MIN_FIRST_TOKEN_LENGTH and first_a == _first_token(b):
            return True

        norm_a = self.normalize(a)
        norm_b = self.normalize(b)
        if not norm_a or not norm_b:
            return False
        return norm_a == norm_b or norm_a in norm_b or norm_b in norm_a

    def suggest(self, raw_name: str, ratings_index: RatingsIndex, limit: int = 3) -> List[Dict]:
        """
        Closest canonical names for an unresolved raw name.

        Suggestions help operators write overrides; they never resolve a name.

        Returns:
            List of {"name", "score"} dicts, best first
        """
        from rapidfuzz import fuzz, process

        if not raw_name or len(ratings_index) == 0:
            return []

        choices = {name: norm for norm, name in ratings_index.normalized}
        results = process.extract(
            self.normalize(raw_name),
            choices,
            scorer=fuzz.WRatio,
            limit=limit,
            score_cutoff=60
        )
        return [
            {"name": key, "score": round(score, 1)}
            for _norm, score, key in results
        ]


@lru_cache(maxsize=1)
def get_resolver() -> TeamNameResolver:
    """Process-wide resolver using the configured mascot corpus."""
    if settings.MASCOT_CORPUS_PATH:
        return TeamNameResolver(MascotCorpus.from_file(settings.MASCOT_CORPUS_PATH))
    return TeamNameResolver(MascotCorpus.default())
