"""
Auto-pick player selection.

The sweeper asks a RankingStrategy for a player when a pick's timer runs out.
Strategies are pluggable so leagues can swap in their own rankings.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..models.draft_model import Player


def rank_key(player: Player):
    """Best rank first; unranked players last; ties broken by player id."""
    return (player.rank is None, player.rank if player.rank is not None else 0, player.id)


def best_available(players: Sequence[Player], position: Optional[str] = None) -> Optional[Player]:
    candidates = [p for p in players if position is None or p.position == position]
    if not candidates:
        return None
    return min(candidates, key=rank_key)


class RankingStrategy(ABC):

    @abstractmethod
    def choose(self, team_id: str, available_players: Sequence[Player],
               queue: Sequence[str], needs: Sequence[str]) -> Optional[Player]:
        """
        Pick a player for ``team_id``.

        Args:
            team_id: Team on the clock
            available_players: Players nobody has drafted yet
            queue: The team's draft queue, highest priority first
            needs: Roster positions the team still needs, most urgent first

        Returns:
            The chosen player, or None when nothing is available
        """


class BestAvailableStrategy(RankingStrategy):
    """
    Queue first, then best available at the most urgent need, then best
    available overall.
    """

    def choose(self, team_id, available_players, queue, needs):
        if not available_players:
            return None

        by_id = {player.id: player for player in available_players}
        for player_id in queue:
            if player_id in by_id:
                return by_id[player_id]

        for position in needs:
            player = best_available(available_players, position)
            if player is not None:
                return player

        return best_available(available_players)


def available_players(players: Sequence[Player], drafted_ids: set) -> List[Player]:
    return [player for player in players if player.id not in drafted_ids]
