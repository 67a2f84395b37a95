"""Rank helpers: pure functions over lists of task dicts."""

import pytest

from namma.kernel.reorder import next_rank, rank_changes, rank_of, sort_by_rank


def item(doc_id, order=None, **extra):
    d = {"id": doc_id, **extra}
    if order is not None:
        d["order"] = order
    return d


class TestRankOf:
    @pytest.mark.parametrize("value,expected", [(3, 3), (2.5, 2.5), (-1, -1), (0, 0)])
    def test_numbers(self, value, expected):
        assert rank_of({"order": value}) == expected

    @pytest.mark.parametrize("value", [None, "1", True, False, [1]])
    def test_non_numbers_are_unranked(self, value):
        assert rank_of({"order": value}) is None

    def test_missing(self):
        assert rank_of({}) is None

    def test_custom_field(self):
        assert rank_of({"position": 4}, "position") == 4


class TestSortByRank:
    def test_ranked_first_then_unranked_in_input_order(self):
        items = [item("u1"), item("b", 2), item("u2"), item("a", 1)]
        assert [i["id"] for i in sort_by_rank(items)] == ["a", "b", "u1", "u2"]

    def test_ties_keep_input_order(self):
        items = [item("x", 1), item("y", 0), item("z", 1)]
        assert [i["id"] for i in sort_by_rank(items)] == ["y", "x", "z"]

    def test_negative_and_fractional(self):
        items = [item("a", 0), item("b", -1), item("c", 0.5)]
        assert [i["id"] for i in sort_by_rank(items)] == ["b", "a", "c"]

    def test_input_not_modified(self):
        items = [item("b", 2), item("a", 1)]
        sort_by_rank(items)
        assert [i["id"] for i in items] == ["b", "a"]


class TestNextRank:
    def test_empty_list(self):
        assert next_rank([]) == -1

    def test_below_minimum(self):
        assert next_rank([item("a", 5), item("b", 6), item("c", 7)]) == 4

    def test_unranked_counts_as_zero(self):
        assert next_rank([item("a", 5), item("b")]) == -1

    def test_negative_minimum(self):
        assert next_rank([item("a", -3), item("b", 2)]) == -4


class TestRankChanges:
    def test_only_changed_positions(self):
        items = [item("c", 2), item("a", 0), item("b", 1)]
        assert rank_changes(items) == [("c", 0), ("a", 1), ("b", 2)]

    def test_already_consistent(self):
        items = [item("a", 0), item("b", 1), item("c", 2)]
        assert rank_changes(items) == []

    def test_partial_move(self):
        items = [item("b", 1), item("a", 0), item("c", 2)]
        assert rank_changes(items) == [("b", 0), ("a", 1)]

    def test_unranked_items_get_ranks(self):
        items = [item("a", 0), item("u")]
        assert rank_changes(items) == [("u", 1)]

    def test_float_equal_to_index_is_unchanged(self):
        assert rank_changes([item("a", 0.0), item("b", 1.0)]) == []
