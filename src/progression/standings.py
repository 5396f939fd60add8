"""
Round-robin pool play: match generation, standings and qualification.
"""
import logging
from itertools import combinations
from typing import Dict, List, Optional

from .errors import ConfigurationError
from .models import (
    KIND_POOL, STATUS_COMPLETED, STATUS_SCHEDULED, Match, Pool, SetScore, StandingEntry, TeamRef,
)
from .scoring import resolve_set_winner

logger = logging.getLogger(__name__)

FORMAT_ALLER = 'aller'
FORMAT_ALLER_RETOUR = 'aller-retour'
RETURN_LEG_FORMATS = (FORMAT_ALLER_RETOUR, 'aller_retour')


def distribute_evenly(total: int, number_of_pools: int) -> List[int]:
    """Split ``total`` entrants into pool sizes differing by at most one, larger pools first."""
    if number_of_pools <= 0:
        raise ConfigurationError("Number of pools must be positive")
    base, extra = divmod(total, number_of_pools)
    return [base + 1 if i < extra else base for i in range(number_of_pools)]


def generate_pool_matches(pool: Pool, config: Optional[Dict] = None, return_leg: bool = False) -> List[Match]:
    """
    Generate every round-robin pairing of a pool.

    With ``return_leg`` each pair plays a second time with the sides swapped.
    """
    config = config or {}
    if len(pool.teams) < 2:
        raise ConfigurationError(f"Pool {pool.name} needs at least 2 teams, has {len(pool.teams)}")

    sets_to_win = config.get('sets_to_win', 1)
    pairings = list(combinations(pool.teams, 2))
    if return_leg:
        pairings += [(team2, team1) for team1, team2 in pairings]

    matches = []
    for number, (team1, team2) in enumerate(pairings, start=1):
        matches.append(Match(
            id=f"{pool.id}-M{number}",
            match_number=number,
            round=pool.name,
            team1=team1,
            team2=team2,
            sets=[SetScore() for _ in range(sets_to_win)],
            status=STATUS_SCHEDULED,
            sets_to_win=sets_to_win,
            points_per_set=config.get('points_per_set', 21),
            tie_break_enabled=config.get('tie_break_enabled', False),
            kind=KIND_POOL,
            pool_id=pool.id,
        ))
    logger.debug("Generated %d matches for pool %s", len(matches), pool.id)
    return matches


def _entry(stats: Dict, team_id, team_name) -> StandingEntry:
    if team_id not in stats:
        stats[team_id] = StandingEntry(team_id, team_name)
    return stats[team_id]


def compute_standings(pool: Pool) -> List[StandingEntry]:
    """
    Rank a pool's teams from its completed matches.

    Ordering: points (3 per win), then sets won, then fewest sets lost.
    Teams still tied keep their order in the pool. When a side lists
    ``members`` (rotating King teams) each member is credited individually.
    """
    stats = {}
    for team in pool.teams:
        _entry(stats, team.id, team.name)

    for match in pool.matches:
        if match.status != STATUS_COMPLETED:
            continue
        if not (isinstance(match.team1, TeamRef) and isinstance(match.team2, TeamRef)):
            continue

        sets1 = sets2 = points1 = points2 = 0
        for set_score in match.sets:
            if not set_score.played:
                continue
            points1 += set_score.score1
            points2 += set_score.score2
            winner = resolve_set_winner(set_score.score1, set_score.score2,
                                        match.points_per_set, match.tie_break_enabled)
            if winner == 1:
                sets1 += 1
            elif winner == 2:
                sets2 += 1

        team1_won = match.winner_id == match.team1.id
        sides = (
            (match.team1, team1_won, sets1, sets2, points1, points2),
            (match.team2, not team1_won, sets2, sets1, points2, points1),
        )
        for side, won, sets_won, sets_lost, scored, conceded in sides:
            for team_id in side.credited_ids():
                entry = _entry(stats, team_id, side.name if not side.members else team_id)
                entry.matches_played += 1
                entry.wins += 1 if won else 0
                entry.losses += 0 if won else 1
                entry.sets_won += sets_won
                entry.sets_lost += sets_lost
                entry.points_scored += scored
                entry.points_conceded += conceded

    standings = sorted(stats.values(), key=lambda e: (-e.points, -e.sets_won, e.sets_lost))
    for rank, entry in enumerate(standings, start=1):
        entry.rank = rank
    return standings


def select_qualified_teams(pool_standings: Dict[str, List[StandingEntry]], qualified_per_pool: int,
                           manual_ids: Optional[List[str]] = None) -> List[TeamRef]:
    """
    Pick the teams advancing from pool play, ranked for bracket seeding.

    Args:
        pool_standings: Standings per pool name, as returned by compute_standings.
        qualified_per_pool: How many teams advance from each pool.
        manual_ids: Explicit selection overriding the per-pool quota.

    Returns:
        Qualified teams ordered by points, sets won, then fewest sets lost.
    """
    candidates = []
    for pool_name, standings in pool_standings.items():
        if manual_ids is None:
            chosen = standings[:qualified_per_pool]
        else:
            chosen = [e for e in standings if e.team_id in manual_ids]
        candidates.extend((entry, pool_name) for entry in chosen)

    if manual_ids is not None:
        found = {entry.team_id for entry, _ in candidates}
        missing = [team_id for team_id in manual_ids if team_id not in found]
        if missing:
            raise ConfigurationError(f"Unknown teams in selection: {', '.join(missing)}")

    candidates.sort(key=lambda c: (-c[0].points, -c[0].sets_won, c[0].sets_lost))
    return [TeamRef(entry.team_id, entry.team_name, pool_name=pool_name) for entry, pool_name in candidates]
