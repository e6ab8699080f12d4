"""Tests for fuzzy service-name matching."""

import pytest

from receptionist.tools.matching import FuzzyMatcher

SERVICES = ["Pool Cleaning", "Pool Repairs", "Furniture Removal"]


@pytest.fixture
def matcher():
    return FuzzyMatcher()


class TestFuzzyMatcher:
    def test_exact_match(self, matcher):
        assert matcher("Pool Repairs", SERVICES) == "Pool Repairs"

    def test_case_and_punctuation_ignored(self, matcher):
        assert matcher("pool cleaning!", SERVICES) == "Pool Cleaning"

    def test_typo_resolves_to_closest(self, matcher):
        assert matcher("poool cleening", SERVICES) == "Pool Cleaning"

    def test_unrelated_query_has_no_match(self, matcher):
        assert matcher("tax advice", SERVICES) is None

    def test_blank_query(self, matcher):
        assert matcher("", SERVICES) is None
        assert matcher("   ", SERVICES) is None

    def test_no_choices(self, matcher):
        assert matcher("Pool Cleaning", []) is None

    def test_default_cutoff(self, matcher):
        assert matcher.score_cutoff == pytest.approx(60.0)

    def test_zero_threshold_requires_exact(self):
        strict = FuzzyMatcher(threshold=0.0)
        assert strict("pool cleaning", SERVICES) == "Pool Cleaning"
        assert strict("poool cleening", SERVICES) is None

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ValueError, match="threshold"):
            FuzzyMatcher(threshold=threshold)
