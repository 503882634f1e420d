"""Tests for duplicate detection, eligibility and mint rate limiting"""
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from engine.mint_policy import (
    REASON_LOW_CONFIDENCE, classify, count_recent_mints, daily_remaining,
    is_already_minted, select_for_minting,
)
from engine.models import DiscoveredNarrative, HistoryData, HistoryEntry

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _entry(narrative, symbol="SYM", created_at=None):
    return HistoryEntry(
        narrative=narrative,
        token_name=f"{narrative} Token",
        symbol=symbol,
        mint_address="Mint111",
        tx_signature="Sig111",
        matching_tokens=["A", "B", "C"],
        confidence=8,
        created_at=(created_at or NOW - timedelta(days=3)).isoformat(),
    )


def _narrative(name, confidence=8, symbol="NEW"):
    return DiscoveredNarrative(
        name=name,
        description=f"{name} are pumping 🚀",
        token_name=f"{name.replace(' ', '')}Coin",
        symbol=symbol,
        confidence=confidence,
        matching_tokens=["A", "B", "C"],
    )


class TestIsAlreadyMinted:
    def test_exact_match(self):
        history = HistoryData([_entry("Dog Coins", "DOGZ")])
        assert is_already_minted(history, "Dog Coins").symbol == "DOGZ"

    def test_case_and_whitespace_insensitive(self):
        history = HistoryData([_entry("Dog Coins")])
        assert is_already_minted(history, "  dog COINS ") is not None

    def test_candidate_contains_existing(self):
        history = HistoryData([_entry("AI")])
        assert is_already_minted(history, "AI Tokens") is not None

    def test_existing_contains_candidate(self):
        history = HistoryData([_entry("Frog/Pepe Variants")])
        assert is_already_minted(history, "pepe") is not None

    def test_reworded_names_do_not_match(self):
        history = HistoryData([_entry("AI Tokens")])
        assert is_already_minted(history, "AI-Themed Memes") is None

    def test_no_match(self):
        history = HistoryData([_entry("Dog Coins"), _entry("Political Memes")])
        assert is_already_minted(history, "Cat Tokens") is None

    def test_returns_first_match_in_history_order(self):
        history = HistoryData([_entry("Cat", "CAT1"), _entry("Cat Tokens", "CAT2")])
        assert is_already_minted(history, "Cat Tokens").symbol == "CAT1"

    def test_empty_history(self):
        assert is_already_minted(HistoryData(), "Anything") is None

    def test_blank_history_name_matches_nothing(self):
        history = HistoryData([_entry("   ", "BLANK"), _entry("Dog Coins", "DOGZ")])
        assert is_already_minted(history, "Space Cats") is None
        assert is_already_minted(history, "Dog Coins").symbol == "DOGZ"

    def test_entry_without_narrative_does_not_block_minting(self):
        history = HistoryData.from_dict(
            {"entries": [{"symbol": "OLD", "createdAt": (NOW - timedelta(hours=1)).isoformat()}]})
        result = classify([_narrative("Space Cats", 9)], history, min_confidence=7)
        assert [n.name for n in result.new] == ["Space Cats"]
        assert count_recent_mints(history, NOW) == 1

    def test_short_name_false_positive_is_kept(self):
        # Loose matching on purpose: an old "AI" mint blocks unrelated names containing "ai"
        history = HistoryData([_entry("AI")])
        assert is_already_minted(history, "AI Coins Are Back") is not None


class TestClassify:
    def test_splits_new_and_skipped(self):
        history = HistoryData([_entry("Dog Coins", "DOGZ")])
        narratives = [_narrative("Dog Coins", 9), _narrative("Cat Tokens", 8), _narrative("Frogs", 4)]
        result = classify(narratives, history, min_confidence=7)
        assert [n.name for n in result.new] == ["Cat Tokens"]
        assert [(n.name, r) for n, r in result.skipped] == [
            ("Dog Coins", "duplicate of DOGZ"),
            ("Frogs", REASON_LOW_CONFIDENCE),
        ]

    def test_duplicate_takes_precedence_over_low_confidence(self):
        history = HistoryData([_entry("Dog Coins", "DOGZ")])
        result = classify([_narrative("Dog Coins", 2)], history, min_confidence=7)
        assert result.new == []
        assert result.skipped[0][1] == "duplicate of DOGZ"

    def test_confidence_equal_to_threshold_is_eligible(self):
        result = classify([_narrative("Cat Tokens", 7)], HistoryData(), min_confidence=7)
        assert len(result.new) == 1

    def test_preserves_input_order(self):
        narratives = [_narrative("A", 9), _narrative("B", 9), _narrative("C", 8)]
        result = classify(narratives, HistoryData(), min_confidence=7)
        assert [n.name for n in result.new] == ["A", "B", "C"]

    def test_duplicates_property(self):
        history = HistoryData([_entry("Dog Coins", "DOGZ")])
        result = classify([_narrative("Dog Coins"), _narrative("Cats", 1)], history, 7)
        assert len(result.duplicates) == 1


class TestCountRecentMints:
    def test_counts_within_window(self):
        history = HistoryData([
            _entry("a", created_at=NOW - timedelta(hours=1)),
            _entry("b", created_at=NOW - timedelta(hours=23, minutes=59)),
            _entry("c", created_at=NOW - timedelta(hours=25)),
        ])
        assert count_recent_mints(history, NOW) == 2

    def test_exactly_24h_old_is_excluded(self):
        history = HistoryData([_entry("a", created_at=NOW - timedelta(hours=24))])
        assert count_recent_mints(history, NOW) == 0

    def test_accepts_z_suffix_timestamps(self):
        entry = replace(_entry("a"), created_at="2026-03-01T11:00:00.000Z")
        assert count_recent_mints(HistoryData([entry]), NOW) == 1

    def test_ignores_unparseable_timestamps(self):
        entry = replace(_entry("a"), created_at="yesterday")
        assert count_recent_mints(HistoryData([entry]), NOW) == 0

    def test_naive_now_treated_as_utc(self):
        history = HistoryData([_entry("a", created_at=NOW - timedelta(hours=2))])
        assert count_recent_mints(history, NOW.replace(tzinfo=None)) == 1


class TestSelectForMinting:
    def _recent_history(self, count):
        return HistoryData([
            _entry(f"n{i}", created_at=NOW - timedelta(hours=1, minutes=i)) for i in range(count)
        ])

    def test_daily_remaining_bounds_selection(self):
        eligible = [_narrative(f"E{i}", 10 - i) for i in range(5)]
        selected = select_for_minting(eligible, self._recent_history(9), NOW, per_run_cap=2, per_day_cap=10)
        assert [n.name for n in selected] == ["E0"]

    def test_per_run_cap_bounds_selection(self):
        eligible = [_narrative(f"E{i}") for i in range(5)]
        selected = select_for_minting(eligible, HistoryData(), NOW, per_run_cap=2, per_day_cap=10)
        assert [n.name for n in selected] == ["E0", "E1"]

    def test_eligible_count_bounds_selection(self):
        eligible = [_narrative("Only")]
        assert len(select_for_minting(eligible, HistoryData(), NOW, 2, 10)) == 1

    def test_cap_reached_selects_nothing(self):
        eligible = [_narrative("E0")]
        assert select_for_minting(eligible, self._recent_history(10), NOW, 2, 10) == []

    def test_over_cap_history_is_not_negative(self):
        assert daily_remaining(self._recent_history(12), NOW, 10) == 0

    def test_old_mints_do_not_count(self):
        history = HistoryData([_entry(f"n{i}", created_at=NOW - timedelta(days=2)) for i in range(10)])
        eligible = [_narrative("E0"), _narrative("E1")]
        assert len(select_for_minting(eligible, history, NOW, 2, 10)) == 2

    @pytest.mark.parametrize("recent,expected", [(0, 2), (8, 2), (9, 1), (10, 0)])
    def test_limit_is_min_of_caps(self, recent, expected):
        eligible = [_narrative(f"E{i}") for i in range(5)]
        assert len(select_for_minting(eligible, self._recent_history(recent), NOW, 2, 10)) == expected
