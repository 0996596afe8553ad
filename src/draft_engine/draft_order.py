"""Snake order generation and turn arithmetic.

In a snake draft the order reverses every round: round 1 goes 1-2-3-4,
round 2 goes 4-3-2-1, and so on. ``current_turn`` is a 1-based index into
the concatenated sequence.
"""

import random
from typing import Iterable, List, Optional


def generate_order(team_count: int, max_rounds: int) -> List[int]:
    """Generate the full snake sequence of draft-order numbers.

    Args:
        team_count: Number of teams in the draft.
        max_rounds: Number of rounds (entities per team).

    Returns:
        List of length ``team_count * max_rounds``. Round r (0-indexed) is
        ascending ``1..team_count`` when r is even, descending when odd.
    """
    if team_count < 0 or max_rounds < 0:
        raise ValueError("team_count and max_rounds must be non-negative")

    order: List[int] = []
    ascending = list(range(1, team_count + 1))
    for rnd in range(max_rounds):
        order.extend(ascending if rnd % 2 == 0 else reversed(ascending))
    return order


def team_order_for_turn(turn: int, team_count: int, max_rounds: int) -> Optional[int]:
    """Draft-order number due on ``turn``, or None past the end."""
    if team_count <= 0 or turn <= 0 or turn > team_count * max_rounds:
        return None
    rnd = (turn - 1) // team_count
    position = (turn - 1) % team_count
    if rnd % 2 == 1:
        return team_count - position
    return position + 1


def round_for_turn(turn: int, team_count: int) -> int:
    """1-based round for a 1-based turn (or pick order)."""
    if team_count <= 0:
        raise ValueError("team_count must be positive")
    return (max(turn, 1) - 1) // team_count + 1


def total_turns(team_count: int, entities_per_team: int) -> int:
    return team_count * entities_per_team


def nominator_index(total_picks: int, team_count: int) -> int:
    """Index into teams sorted by draft order holding the nomination right."""
    return total_picks % team_count


def shuffled_order(team_count: int, rng: Optional[random.Random] = None) -> List[int]:
    """Random permutation of ``1..team_count`` (Fisher-Yates via random.shuffle)."""
    rng = rng or random.Random()
    order = list(range(1, team_count + 1))
    rng.shuffle(order)
    return order


def is_valid_permutation(orders: Iterable[int]) -> bool:
    """Whether the draft-order values are exactly ``1..n`` with no gaps or duplicates."""
    values = list(orders)
    return sorted(values) == list(range(1, len(values) + 1))
