"""Tests for rollout buckets -- determinism, uniformity, per-flag independence."""

import pytest

from featuregate.rollout import bucket, in_rollout


SUBJECTS = [f"user-{i}" for i in range(100_000)]


class TestBucket:
    def test_deterministic(self):
        assert bucket("flag-a", "user-1") == bucket("flag-a", "user-1")

    def test_range(self):
        for subject in SUBJECTS[:5_000]:
            assert 0 <= bucket("flag-a", subject) < 100

    def test_depends_on_flag(self):
        differing = sum(1 for s in SUBJECTS[:1_000] if bucket("flag-a", s) != bucket("flag-b", s))
        assert differing > 900

    @pytest.mark.parametrize("percentage", [0, 25, 50, 75, 100])
    def test_uniform_distribution(self, percentage):
        included = sum(1 for s in SUBJECTS if in_rollout("beta-search", s, percentage))
        fraction = included / len(SUBJECTS) * 100
        assert abs(fraction - percentage) <= 2

    def test_independent_populations(self):
        a = {s for s in SUBJECTS[:10_000] if in_rollout("flag-a", s, 50)}
        b = {s for s in SUBJECTS[:10_000] if in_rollout("flag-b", s, 50)}
        assert a != b
        # Independent halves overlap on roughly a quarter of subjects.
        assert 2_000 < len(a & b) < 3_000


class TestInRollout:
    def test_zero_excludes_everyone(self):
        assert not any(in_rollout("f", s, 0) for s in SUBJECTS[:1_000])

    def test_hundred_includes_everyone(self):
        assert all(in_rollout("f", s, 100) for s in SUBJECTS[:1_000])

    def test_monotonic_in_percentage(self):
        for subject in SUBJECTS[:2_000]:
            if in_rollout("ramp", subject, 30):
                assert in_rollout("ramp", subject, 60)
