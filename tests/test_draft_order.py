"""Tests for snake order generation and turn arithmetic."""

import random

import pytest

from src.draft_engine.draft_order import (
    generate_order,
    is_valid_permutation,
    nominator_index,
    round_for_turn,
    shuffled_order,
    team_order_for_turn,
    total_turns,
)


class TestGenerateOrder:
    def test_two_teams_two_rounds(self):
        assert generate_order(2, 2) == [1, 2, 2, 1]

    def test_length_is_teams_times_rounds(self):
        assert len(generate_order(5, 7)) == 35

    def test_rounds_alternate_direction(self):
        order = generate_order(4, 5)
        for rnd in range(5):
            chunk = order[rnd * 4:(rnd + 1) * 4]
            if rnd % 2 == 0:
                assert chunk == [1, 2, 3, 4]
            else:
                assert chunk == [4, 3, 2, 1]

    def test_last_in_round_picks_first_next_round(self):
        order = generate_order(6, 2)
        assert order[5] == order[6] == 6

    def test_empty_inputs(self):
        assert generate_order(0, 3) == []
        assert generate_order(3, 0) == []

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValueError):
            generate_order(-1, 2)


class TestTurnArithmetic:
    def test_team_order_matches_generated_sequence(self):
        order = generate_order(3, 4)
        for turn, expected in enumerate(order, start=1):
            assert team_order_for_turn(turn, 3, 4) == expected

    def test_team_order_out_of_range(self):
        assert team_order_for_turn(0, 3, 2) is None
        assert team_order_for_turn(7, 3, 2) is None

    def test_round_for_turn(self):
        assert round_for_turn(1, 4) == 1
        assert round_for_turn(4, 4) == 1
        assert round_for_turn(5, 4) == 2
        assert round_for_turn(9, 4) == 3

    def test_total_turns(self):
        assert total_turns(4, 6) == 24

    def test_nominator_rotates_once_per_round(self):
        assert [nominator_index(p, 3) for p in range(7)] == [0, 1, 2, 0, 1, 2, 0]


class TestShuffle:
    def test_shuffle_is_permutation(self):
        for seed in range(10):
            order = shuffled_order(8, random.Random(seed))
            assert sorted(order) == list(range(1, 9))

    def test_shuffle_is_deterministic_for_seed(self):
        assert shuffled_order(6, random.Random(3)) == shuffled_order(6, random.Random(3))

    def test_is_valid_permutation(self):
        assert is_valid_permutation([2, 1, 3])
        assert not is_valid_permutation([1, 1, 2])
        assert not is_valid_permutation([1, 3])
        assert is_valid_permutation([])
