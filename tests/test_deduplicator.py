"""
test_deduplicator.py — Duplicate detection, greedy grouping and merging.

Run:
    pytest tests/test_deduplicator.py -v
"""

from datetime import timedelta

import pytest

from conftest import make_signal

from carepulse.services.deduplicator import (
    are_duplicates,
    average_sentiment,
    find_existing_duplicate,
    group_duplicates,
    is_within_window,
    jaccard_similarity,
    merge_signals,
    select_representative,
)

T0 = make_signal().detected_at


class TestJaccard:

    def test_dallas_pair_is_half(self):
        assert jaccard_similarity(["network", "outage", "dallas"], ["network", "down", "dallas"]) == 0.5

    @pytest.mark.parametrize("a,b", [
        (["a", "b"], ["b", "c", "d"]),
        (["Network"], ["network", "down"]),
        (["x"], ["y"]),
    ])
    def test_symmetric(self, a, b):
        assert jaccard_similarity(a, b) == jaccard_similarity(b, a)

    def test_identity(self):
        assert jaccard_similarity(["network", "outage"], ["network", "outage"]) == 1.0

    def test_case_insensitive(self):
        assert jaccard_similarity(["NETWORK"], ["network"]) == 1.0

    def test_empty_side_is_zero(self):
        assert jaccard_similarity([], ["network"]) == 0.0
        assert jaccard_similarity([], []) == 0.0


class TestAreDuplicates:

    def test_dallas_scenario(self):
        a = make_signal(keywords=["network", "outage", "dallas"], sentiment=-0.4)
        b = make_signal(
            keywords=["network", "down", "dallas"], sentiment=-0.9,
            detected_at=T0 + timedelta(minutes=10),
        )
        assert are_duplicates(a, b)
        assert select_representative([a, b]) is b

    def test_different_area(self):
        a = make_signal()
        b = make_signal(product_area="Billing")
        assert not are_duplicates(a, b)

    def test_outside_window(self):
        a = make_signal()
        b = make_signal(detected_at=T0 + timedelta(minutes=31))
        assert not are_duplicates(a, b)

    def test_window_edge_inclusive(self):
        assert is_within_window(T0, T0 + timedelta(minutes=30))
        assert is_within_window(T0 + timedelta(minutes=30), T0)

    def test_low_similarity(self):
        a = make_signal(keywords=["network", "outage", "dallas"])
        b = make_signal(keywords=["network", "slow", "houston", "evening"])
        assert not are_duplicates(a, b)

    def test_custom_parameters(self):
        a = make_signal()
        b = make_signal(detected_at=T0 + timedelta(minutes=50))
        assert are_duplicates(a, b, window=timedelta(hours=1))
        c = make_signal(keywords=["network", "dallas", "evening", "calls"])
        assert are_duplicates(a, c, threshold=0.4)
        assert not are_duplicates(a, c)


class TestRepresentative:

    def test_largest_magnitude(self):
        mild = make_signal(sentiment=-0.2)
        strong = make_signal(sentiment=0.8)
        assert select_representative([mild, strong]) is strong

    def test_tie_broken_by_earliest(self):
        later = make_signal(sentiment=-0.6, detected_at=T0 + timedelta(minutes=5))
        earlier = make_signal(sentiment=0.6, detected_at=T0)
        assert select_representative([later, earlier]) is earlier

    def test_empty_group(self):
        with pytest.raises(ValueError):
            select_representative([])


class TestGroupDuplicates:

    def _burst(self):
        return [
            make_signal(keywords=["network", "outage", "dallas"], sentiment=-0.5),
            make_signal(keywords=["billing", "overcharge"], product_area="Billing", sentiment=-0.3),
            make_signal(keywords=["network", "down", "dallas"], sentiment=-0.9,
                        detected_at=T0 + timedelta(minutes=10)),
            make_signal(keywords=["network", "outage", "dallas", "5g"], sentiment=-0.1,
                        detected_at=T0 + timedelta(minutes=20)),
        ]

    def test_partition(self):
        signals = self._burst()
        groups = group_duplicates(signals)

        assert len(groups) == 2
        assert groups[0].members == [signals[0], signals[2], signals[3]]
        assert groups[0].intensity == 3
        assert groups[0].representative is signals[2]
        assert groups[0].avg_sentiment == pytest.approx(-0.5)
        assert groups[1].members == [signals[1]]
        assert groups[1].intensity == 1

    def test_every_signal_in_exactly_one_group(self):
        signals = self._burst()
        members = [id(m) for g in group_duplicates(signals) for m in g.members]
        assert sorted(members) == sorted(id(s) for s in signals)

    def test_idempotent_on_representatives(self):
        reps = [g.representative for g in group_duplicates(self._burst())]
        regrouped = group_duplicates(reps)
        assert [g.representative for g in regrouped] == reps
        assert all(g.intensity == 1 for g in regrouped)

    def test_empty(self):
        assert group_duplicates([]) == []

    def test_average_sentiment_empty(self):
        assert average_sentiment([]) == 0.0


class TestIncremental:

    def test_find_existing_returns_first_match(self):
        candidate = make_signal(keywords=["network", "down", "dallas"])
        unrelated = make_signal(keywords=["billing"], product_area="Billing")
        first = make_signal(keywords=["network", "outage", "dallas"])
        second = make_signal(keywords=["network", "down", "dallas"])
        assert find_existing_duplicate(candidate, [unrelated, first, second]) is first

    def test_find_existing_none(self):
        assert find_existing_duplicate(make_signal(), []) is None

    def test_merge(self):
        existing = make_signal(sentiment=-0.8, intensity=2, detected_at=T0 + timedelta(minutes=5))
        incoming = make_signal(sentiment=-0.2, source="reddit", detected_at=T0)
        merged = merge_signals(existing, incoming)

        assert merged.sentiment == pytest.approx(-0.5)
        assert merged.detected_at == T0
        assert merged.intensity == 3
        assert merged.meta.duplicate_count == 3
        assert merged.meta.latest_source == "reddit"
        assert merged.meta.latest_detected == T0
        assert merged.id == existing.id
        # inputs untouched
        assert existing.intensity == 2

    def test_merge_order_independent_for_sentiment(self):
        a = make_signal(sentiment=-0.9, detected_at=T0 + timedelta(minutes=3))
        b = make_signal(sentiment=0.3, detected_at=T0)

        ab = merge_signals(a, b)
        ba = merge_signals(b, a)
        assert ab.sentiment == pytest.approx(ba.sentiment)
        assert ab.detected_at == ba.detected_at == T0
        assert ab.intensity == a.intensity + 1
        assert ba.intensity == b.intensity + 1
