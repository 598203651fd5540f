"""
A/B variant assignment tests

Run: pytest tests/test_experiments.py -v
"""

import pytest

from craftguide.services.experiments import DEFAULT_VARIANTS, ab_test_variant


class TestAbTestVariant:
    def test_assignment_is_stable(self):
        assert ab_test_variant("maker-1", "welcome-copy") == ab_test_variant("maker-1", "welcome-copy")

    def test_default_variants_are_both_used(self):
        assigned = [ab_test_variant(f"maker-{n}", "welcome-copy") for n in range(200)]
        assert set(assigned) == set(DEFAULT_VARIANTS)

    def test_users_spread_across_variants(self):
        variants = ("red", "green", "blue")
        assigned = [ab_test_variant(f"maker-{n}", "button-colour", variants) for n in range(300)]

        assert set(assigned) <= set(variants)
        for variant in variants:
            assert assigned.count(variant) > 50

    def test_tests_are_bucketed_independently(self):
        users = [f"maker-{n}" for n in range(50)]
        first = [ab_test_variant(user, "welcome-copy") for user in users]
        second = [ab_test_variant(user, "step-photos") for user in users]
        assert first != second

    def test_single_variant(self):
        assert ab_test_variant("maker-1", "holdout", ["control"]) == "control"

    def test_no_variants(self):
        with pytest.raises(ValueError):
            ab_test_variant("maker-1", "welcome-copy", [])
