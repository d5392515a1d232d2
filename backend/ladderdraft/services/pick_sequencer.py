"""
Snake draft sequencing.

Pure functions: given the ordered teams and a round count, produce the full
pick order. No state and no I/O.
"""
import uuid
from typing import List, Sequence, Tuple

from ..exceptions import InvalidArgument
from ..models.draft_model import DraftPick, Team


def order_teams(teams: Sequence[Team]) -> List[Team]:
    """
    Order teams for the draft.

    Teams with an explicit draft_position come first in ascending order;
    teams without one keep their insertion order after them. Ties on
    draft_position fall back to insertion order (sorted() is stable).
    """
    indexed = list(enumerate(teams))
    indexed.sort(key=lambda item: (
        item[1].draft_position is None,
        item[1].draft_position if item[1].draft_position is not None else 0,
        item[0]
    ))
    return [team for _, team in indexed]


def generate_snake_order(team_count: int, rounds: int) -> List[Tuple[int, int, int]]:
    """
    Generate snake draft order.

    Odd rounds run 0..n-1, even rounds run n-1..0. overall_pick increases by
    one across the whole draft starting at 1.

    Args:
        team_count: Number of teams in the draft
        rounds: Number of rounds

    Returns:
        List of (round, overall_pick, team_index) triples in pick order
    """
    if rounds < 1:
        raise InvalidArgument('Rounds must be at least 1')
    if team_count <= 0:
        return []

    order = []
    overall_pick = 1
    for round_num in range(1, rounds + 1):
        indices = range(team_count)
        if round_num % 2 == 0:
            indices = reversed(indices)
        for team_index in indices:
            order.append((round_num, overall_pick, team_index))
            overall_pick += 1
    return order


def build_draft_picks(session_id: str, team_ids: Sequence[str], rounds: int) -> List[DraftPick]:
    """Create the DraftPick rows for a session from an already ordered team list."""
    return [
        DraftPick(
            id=str(uuid.uuid4()),
            session_id=session_id,
            round=round_num,
            overall_pick=overall_pick,
            team_id=team_ids[team_index]
        )
        for round_num, overall_pick, team_index in generate_snake_order(len(team_ids), rounds)
    ]
