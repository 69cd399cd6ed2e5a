"""Unit tests for TeamNameResolver.

Test Strategy:
1. Test normalization (mascots, State/St./Saint, punctuation, accents)
2. Test resolution order (override → exact → normalized → containment → first token)
3. Test overrides pointing at missing teams fall through to heuristics
4. Test fixture-pairing comparison and operator suggestions

Each test follows the pattern:
- Given: A ratings index built from the sample ratings
- When: resolve() / match() is called with a raw feed name
- Then: The canonical name (or None) and the rule that matched
"""
import json
from types import SimpleNamespace

import pytest

# Import helper from conftest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import SAMPLE_RATINGS

from power_ratings.services.ratings.name_resolver import (
    MascotCorpus,
    OverrideIndex,
    TeamNameResolver,
    normalize_team_name,
)


@pytest.fixture
def ratings_index(resolver):
    return resolver.build_ratings_index(SAMPLE_RATINGS.keys())


def _override(source_name, canonical_name, schedule_name=None, odds_api_name=None, secondary_name=None):
    return SimpleNamespace(
        source_name=source_name,
        canonical_name=canonical_name,
        schedule_name=schedule_name,
        odds_api_name=odds_api_name,
        secondary_name=secondary_name,
    )


class TestNormalization:
    """Test suite for normalize_team_name()."""

    # Mascot Tests
    # ─────────────────────────────────────────────────────────────

    def test_strips_trailing_mascot(self, corpus):
        """Should strip a trailing mascot from the name."""
        assert normalize_team_name("Duke Blue Devils", corpus) == "duke"

    def test_mascot_only_stripped_when_trailing(self, corpus):
        """Should leave a mascot word that is the whole name."""
        assert normalize_team_name("Knights", corpus) == "knights"

    def test_longest_mascot_wins(self):
        """Should strip the longest matching mascot first."""
        corpus = MascotCorpus(["tide", "crimson tide"])
        assert normalize_team_name("Alabama Crimson Tide", corpus) == "alabama"

    def test_mascot_with_apostrophe(self):
        """Should strip a mascot spelled with an apostrophe."""
        assert normalize_team_name("Louisiana Ragin' Cajuns", MascotCorpus.default()) == "louisiana"

    def test_corpus_entries_lose_punctuation(self):
        """Should match corpus entries written with punctuation."""
        corpus = MascotCorpus(["Ragin' Cajuns"])
        assert normalize_team_name("Louisiana Ragin Cajuns", corpus) == "louisiana"

    # State / Saint Tests
    # ─────────────────────────────────────────────────────────────

    def test_state_and_st_are_equivalent(self, corpus):
        """Should collapse 'State' and 'St.' to the same token."""
        assert normalize_team_name("Michigan State Spartans", corpus) == "michigan st"
        assert normalize_team_name("Michigan St.", corpus) == "michigan st"

    def test_saint_collapses_to_st(self, corpus):
        """Should collapse 'Saint' to 'st'."""
        assert normalize_team_name("Saint Mary's Gaels", corpus) == "st marys"
        assert normalize_team_name("St. Mary's", corpus) == "st marys"

    # Punctuation Tests
    # ─────────────────────────────────────────────────────────────

    def test_removes_punctuation(self, corpus):
        """Should remove periods, apostrophes and parentheses."""
        assert normalize_team_name("St. John's (NY)", corpus) == "st johns ny"

    def test_removes_accents_and_extra_whitespace(self, corpus):
        """Should remove accents and collapse whitespace."""
        assert normalize_team_name("  San   José  St. ", corpus) == "san jose st"

    def test_empty_name(self, corpus):
        assert normalize_team_name("", corpus) == ""


class TestResolution:
    """Test suite for TeamNameResolver.match()."""

    # Rule Tests
    # ─────────────────────────────────────────────────────────────

    def test_exact_case_insensitive(self, resolver, ratings_index):
        """Should resolve a case-insensitive exact match to the canonical spelling."""
        match = resolver.match("DUKE", ratings_index)
        assert match.name == "Duke"
        assert match.method == "exact"

    def test_normalized_match(self, resolver, ratings_index):
        """Should resolve mascot and State variants through normalization."""
        assert resolver.match("Duke Blue Devils", ratings_index).method == "normalized"
        assert resolver.resolve("Michigan State Spartans", ratings_index) == "Michigan St."
        assert resolver.resolve("Saint Mary's Gaels", ratings_index) == "Saint Mary's"
        assert resolver.resolve("St. John's Red Storm", ratings_index) == "St. John's"

    def test_containment_match(self, resolver, ratings_index):
        """Should resolve when one normalized name contains the other."""
        match = resolver.match("Kansas Jayhawks Basketball", ratings_index)
        assert match.name == "Kansas"
        assert match.method == "containment"

    def test_first_token_match(self, resolver, ratings_index):
        """Should fall back to an identical long first token."""
        match = resolver.match("Michigan Wolverines", ratings_index)
        assert match.name == "Michigan St."
        assert match.method == "first_token"

    def test_short_names_do_not_match_loosely(self, resolver, ratings_index):
        """Should not use containment or first token for very short names."""
        assert resolver.resolve("St", ratings_index) is None

    def test_unresolved_returns_none(self, resolver, ratings_index):
        """Should return None when no rule matches."""
        assert resolver.resolve("UConn Huskies", ratings_index) is None
        assert resolver.resolve("Iowa Hawkeyes", ratings_index) is None

    def test_blank_name(self, resolver, ratings_index):
        assert resolver.match("   ", ratings_index) is None

    # Override Tests
    # ─────────────────────────────────────────────────────────────

    def test_override_resolves_unmatched_name(self, resolver, ratings_index):
        """Should resolve through an override when heuristics fail."""
        overrides = OverrideIndex.from_mapping({"UConn Huskies": "Connecticut"})
        match = resolver.match("UConn Huskies", ratings_index, overrides)
        assert match.name == "Connecticut"
        assert match.method == "override"

    def test_override_outranks_exact(self, resolver, ratings_index):
        """Should prefer an override even when an exact match exists."""
        overrides = OverrideIndex.from_mapping({"Kansas": "Duke"})
        assert resolver.resolve("Kansas", ratings_index, overrides) == "Duke"

    def test_override_is_case_insensitive(self, resolver, ratings_index):
        overrides = OverrideIndex.from_mapping({"Knights": "UCF"})
        assert resolver.resolve("KNIGHTS", ratings_index, overrides) == "UCF"

    def test_override_to_missing_team_falls_through(self, resolver, ratings_index):
        """Should ignore an override whose target has no rating."""
        overrides = OverrideIndex.from_mapping({
            "Knights": "Central Florida",
            "Duke Blue Devils": "Duke University",
        })
        assert resolver.resolve("Knights", ratings_index, overrides) is None
        assert resolver.match("Duke Blue Devils", ratings_index, overrides).method == "normalized"

    def test_override_aliases(self, resolver, ratings_index):
        """Should resolve every vocabulary alias recorded on an override."""
        overrides = OverrideIndex([
            _override("Knights", "UCF", schedule_name="UCF Knights",
                      odds_api_name="Central Florida Knights", secondary_name="Central Florida"),
        ])
        assert resolver.resolve("Central Florida Knights", ratings_index, overrides) == "UCF"
        assert resolver.resolve("Central Florida", ratings_index, overrides) == "UCF"
        assert overrides.market_name("Knights") == "Central Florida Knights"
        assert overrides.market_name("ucf") == "Central Florida Knights"

    def test_source_name_beats_alias(self):
        """Should let a source name win over another override's alias."""
        overrides = OverrideIndex([
            _override("Miami", "Miami FL"),
            _override("Miami RedHawks", "Miami OH", schedule_name="Miami"),
        ])
        assert overrides.target("miami") == "Miami FL"


class TestNamesMatch:
    """Test suite for fixture pairing comparison."""

    def test_mascot_variant(self, resolver):
        assert resolver.names_match("Duke Blue Devils", "Duke")

    def test_state_variant(self, resolver):
        assert resolver.names_match("Michigan St. Spartans", "Michigan State Spartans")

    def test_different_teams(self, resolver):
        assert not resolver.names_match("Duke Blue Devils", "Kansas Jayhawks")

    def test_missing_name(self, resolver):
        assert not resolver.names_match("", "Duke")


class TestSuggestions:
    """Test suite for suggest()."""

    def test_suggests_closest_canonical_name(self, resolver, ratings_index):
        """Should rank the closest canonical name first."""
        suggestions = resolver.suggest("Conn Huskies", ratings_index)
        assert suggestions
        assert suggestions[0]["name"] == "Connecticut"
        assert all(s["score"] >= 60 for s in suggestions)

    def test_no_suggestions_for_empty_name(self, resolver, ratings_index):
        assert resolver.suggest("", ratings_index) == []


class TestMascotCorpus:
    """Test suite for corpus loading."""

    def test_bundled_corpus(self):
        """Should load the packaged corpus and strip common mascots."""
        resolver = TeamNameResolver(MascotCorpus.default())
        assert resolver.normalize("Duke Blue Devils") == "duke"
        assert resolver.normalize("Michigan State Spartans") == "michigan st"

    def test_from_file_accepts_bare_list(self, tmp_path):
        """Should load a JSON list as well as a {"mascots": [...]} object."""
        path = tmp_path / "mascots.json"
        path.write_text(json.dumps(["Ramblers"]))
        corpus = MascotCorpus.from_file(path)
        assert corpus.mascots == ("ramblers",)
        assert corpus.strip("loyola chicago ramblers") == "loyola chicago"
