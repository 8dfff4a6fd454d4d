"""Tests for pot resolution helpers."""

import pytest

from tests.conftest import make_pot
from moneylens.core.resolvers import ResolverError, find_pot_by_keywords, resolve_pot


class TestResolvePot:
    def test_exact_id_match(self):
        pots = [make_pot("Bills"), make_pot("Food")]
        assert resolve_pot(pots, "pot-food").name == "Food"

    def test_no_match_raises_with_available(self):
        pots = [make_pot("Bills"), make_pot("Food")]
        with pytest.raises(ResolverError) as exc_info:
            resolve_pot(pots, "pot-holiday")
        assert exc_info.value.entity_type == "pot"
        assert exc_info.value.query == "pot-holiday"
        assert exc_info.value.available == ["Bills", "Food"]
        assert "Available: Bills, Food" in str(exc_info.value)

    def test_empty_list(self):
        with pytest.raises(ResolverError) as exc_info:
            resolve_pot([], "pot-bills")
        assert "Available" not in str(exc_info.value)


class TestFindPotByKeywords:
    def test_partial_case_insensitive_match(self):
        pots = [make_pot("Monthly BILLS")]
        assert find_pot_by_keywords(pots, ["bill"]).name == "Monthly BILLS"

    def test_any_keyword_matches(self):
        pots = [make_pot("Car Transport")]
        assert find_pot_by_keywords(pots, ["petrol", "transport"]).name == "Car Transport"

    def test_prefers_lower_priority_number(self):
        pots = [make_pot("Savings Later", priority=5), make_pot("Savings Now", priority=2)]
        assert find_pot_by_keywords(pots, ["saving"]).name == "Savings Now"

    def test_no_match_returns_none(self):
        assert find_pot_by_keywords([make_pot("Holiday")], ["bill"]) is None
