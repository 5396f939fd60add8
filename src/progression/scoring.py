"""
Set and match outcome resolution from raw set scores.
"""
from typing import List, Optional

from .errors import InconsistentStateError, ValidationError
from .models import (
    STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_PENDING, Match, SetScore,
)


def resolve_set_winner(score1, score2, points_per_set: int, tie_break_enabled: bool) -> Optional[int]:
    """Return 1 or 2 for the side that won the set, None if it is undecided or unplayed."""
    if score1 is None or score2 is None:
        return None
    if tie_break_enabled:
        if score1 >= points_per_set and score1 - score2 >= 2:
            return 1
        if score2 >= points_per_set and score2 - score1 >= 2:
            return 2
        return None
    if score1 >= points_per_set or score2 >= points_per_set:
        if score1 > score2:
            return 1
        if score2 > score1:
            return 2
    return None


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


def _parse_score(value, set_number: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Set {set_number}: scores must be numbers")
    if isinstance(value, str):
        value = value.strip()
        try:
            value = int(value)
        except ValueError:
            raise ValidationError(f"Set {set_number}: scores must be numbers") from None
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"Set {set_number}: scores must be whole numbers")
        value = int(value)
    elif not isinstance(value, int):
        raise ValidationError(f"Set {set_number}: scores must be numbers")
    if value < 0:
        raise ValidationError(f"Set {set_number}: scores cannot be negative")
    return value


def parse_sets(raw_sets) -> List[SetScore]:
    """
    Validate raw set data into SetScore records.

    Each set is either a mapping with ``score1``/``score2`` or a two-item
    sequence. A set with both sides empty is kept as unplayed.

    Raises:
        ValidationError: if ``raw_sets`` is not a list, or a set is malformed
            or has only one side scored.
    """
    if not isinstance(raw_sets, (list, tuple)):
        raise ValidationError("Sets must be a list")

    parsed = []
    for index, raw in enumerate(raw_sets, start=1):
        if isinstance(raw, SetScore):
            raw = (raw.score1, raw.score2)
        if isinstance(raw, dict):
            if 'score1' not in raw or 'score2' not in raw:
                raise ValidationError(f"Set {index}: expected score1 and score2")
            score1, score2 = raw['score1'], raw['score2']
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            score1, score2 = raw
        else:
            raise ValidationError(f"Set {index}: expected a pair of scores")

        if _is_empty(score1) and _is_empty(score2):
            parsed.append(SetScore())
            continue
        if _is_empty(score1) or _is_empty(score2):
            raise ValidationError(f"Set {index}: both scores must be filled or both must be empty")
        parsed.append(SetScore(_parse_score(score1, index), _parse_score(score2, index)))
    return parsed


class MatchOutcome:
    def __init__(self, status, sets_won_team1, sets_won_team2, winner_id=None, loser_id=None,
                 winner_side=None):
        self.status = status
        self.sets_won_team1 = sets_won_team1
        self.sets_won_team2 = sets_won_team2
        self.winner_id = winner_id
        self.loser_id = loser_id
        self.winner_side = winner_side

    def to_dict(self):
        return {
            'status': self.status,
            'sets_won_team1': self.sets_won_team1,
            'sets_won_team2': self.sets_won_team2,
            'winner_id': self.winner_id,
            'loser_id': self.loser_id,
        }

    def __repr__(self):
        return (f"MatchOutcome(status={self.status}, "
                f"sets={self.sets_won_team1}-{self.sets_won_team2}, winner={self.winner_id})")


def resolve_match_outcome(sets, sets_to_win: int, points_per_set: int, tie_break_enabled: bool,
                          team1_id, team2_id) -> MatchOutcome:
    """
    Aggregate set winners into a match status and winner/loser.

    A match is completed once a side reaches ``sets_to_win``, or once
    ``sets_to_win`` sets have been decided and one side leads.
    """
    parsed = parse_sets(sets)
    won = [0, 0]
    for set_score in parsed:
        winner = resolve_set_winner(set_score.score1, set_score.score2, points_per_set, tie_break_enabled)
        if winner is not None:
            won[winner - 1] += 1

    decided = won[0] + won[1]
    if decided == 0:
        return MatchOutcome(STATUS_PENDING, 0, 0)

    reached = max(won) >= sets_to_win
    played_out = decided >= sets_to_win and won[0] != won[1]
    if not (reached or played_out):
        return MatchOutcome(STATUS_IN_PROGRESS, won[0], won[1])

    if won[0] > won[1]:
        return MatchOutcome(STATUS_COMPLETED, won[0], won[1], team1_id, team2_id, winner_side=1)
    return MatchOutcome(STATUS_COMPLETED, won[0], won[1], team2_id, team1_id, winner_side=2)


def score_match(match: Match, raw_sets) -> dict:
    """
    Build the field update for recording ``raw_sets`` on a stored match.

    Raises:
        InconsistentStateError: if either slot still awaits another match.
        ValidationError: if the sets are malformed.
    """
    if not match.is_playable:
        raise InconsistentStateError(f"Match {match.id} is waiting for teams")

    parsed = parse_sets(raw_sets)
    outcome = resolve_match_outcome(
        parsed, match.sets_to_win, match.points_per_set, match.tie_break_enabled,
        match.team1.id, match.team2.id,
    )
    winner_name = loser_name = None
    if outcome.winner_side == 1:
        winner_name, loser_name = match.team1.name, match.team2.name
    elif outcome.winner_side == 2:
        winner_name, loser_name = match.team2.name, match.team1.name

    return {
        'sets': [s.to_dict() for s in parsed],
        'status': outcome.status,
        'sets_won_team1': outcome.sets_won_team1,
        'sets_won_team2': outcome.sets_won_team2,
        'winner_id': outcome.winner_id,
        'loser_id': outcome.loser_id,
        'winner_name': winner_name,
        'loser_name': loser_name,
    }
