"""
Single elimination bracket generation and final ranking.
"""
import logging
import math
from typing import Dict, List, Optional

from .errors import ConfigurationError
from .models import (
    KIND_ELIMINATION, LOSER, STATUS_COMPLETED, STATUS_SCHEDULED, TEAM1, TEAM2, WINNER,
    BracketStructure, Match, Placeholder, SetScore, TeamRef,
)

logger = logging.getLogger(__name__)

PRELIMINARY_ROUND = "Preliminary Round"
FINAL_ROUND = "Final"
THIRD_PLACE_ROUND = "Third Place"

WIN_POINTS = 3
PARTICIPATION_BONUS = 1
PLACEMENT_BONUS = {1: 15, 2: 9, 3: 4}

# (last rank covered, championship points)
DEFAULT_RANK_POINTS = [
    (1, 100),
    (2, 80),
    (3, 65),
    (4, 55),
    (8, 40),
    (16, 25),
    (32, 15),
]
DEFAULT_RANK_POINTS_FLOOR = 10


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round <= 2:
        return FINAL_ROUND
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    elif teams_in_round == 16:
        return "Round of 16"
    elif teams_in_round == 32:
        return "Round of 32"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 1:
        return 2
    return 2 ** math.ceil(math.log2(num_teams))


def compute_bracket_structure(team_count: int) -> BracketStructure:
    """
    Work out byes, preliminary matches and the main bracket size for N teams.

    The top ``byes`` teams skip the preliminary round; the other
    ``team_count - byes`` teams (always an even number) play it, so the main
    bracket starts with ``total_slots / 2`` teams.

    Raises:
        ConfigurationError: if fewer than 2 teams are given.
    """
    if team_count < 2:
        raise ConfigurationError("At least 2 teams are required for an elimination bracket")

    total_slots = calculate_bracket_size(team_count)
    byes = total_slots - team_count
    teams_playing_preliminary = team_count - byes
    main_bracket_size = total_slots // 2

    return BracketStructure(
        total_slots=total_slots,
        byes=byes,
        preliminary_matches=teams_playing_preliminary // 2,
        main_bracket_size=main_bracket_size,
        first_main_round_name=get_round_name(main_bracket_size),
        teams_playing_preliminary=teams_playing_preliminary,
    )


def _as_team(team) -> TeamRef:
    if isinstance(team, TeamRef):
        return team
    if isinstance(team, dict):
        return TeamRef.from_dict(team)
    return TeamRef(str(team), str(team))


def generate_bracket(ranked_teams: List, config: Optional[Dict] = None,
                     id_prefix: str = '') -> List[Match]:
    """
    Build every match of a single elimination bracket.

    Args:
        ranked_teams: Qualified teams, best first (TeamRef or team dicts).
        config: ``sets_to_win``, ``points_per_set`` and ``tie_break_enabled``.
        id_prefix: Prepended to generated match ids.

    Returns:
        Matches in play order: preliminary round, main rounds up to the
        Final, then the third-place match when the bracket has semifinals.
    """
    config = config or {}
    teams = [_as_team(t) for t in ranked_teams]
    structure = compute_bracket_structure(len(teams))
    logger.debug("Bracket structure for %d teams: %r", len(teams), structure)

    sets_to_win = config.get('sets_to_win', 3)
    match_settings = {
        'sets_to_win': sets_to_win,
        'points_per_set': config.get('points_per_set', 21),
        'tie_break_enabled': config.get('tie_break_enabled', False),
    }
    matches = []

    def new_match(round_name, team1, team2):
        number = len(matches) + 1
        match = Match(
            id=f"{id_prefix}M{number}",
            match_number=number,
            round=round_name,
            team1=team1,
            team2=team2,
            sets=[SetScore() for _ in range(sets_to_win)],
            status=STATUS_SCHEDULED,
            kind=KIND_ELIMINATION,
            **match_settings,
        )
        matches.append(match)
        return match

    def link(source, target, slot, source_type=WINNER):
        placeholder = Placeholder(source.id, source_type, f"{source_type.capitalize()} M{source.match_number}")
        if source_type == WINNER:
            source.next_match_id = target.id
            source.next_match_team_slot = slot
        else:
            source.next_match_loser_id = target.id
            source.next_match_loser_team_slot = slot
        setattr(target, slot, placeholder)
        setattr(target, f"{slot}_source", placeholder)

    if len(teams) == 2:
        new_match(FINAL_ROUND, teams[0], teams[1])
        return matches

    byes = structure.byes
    preliminary = []
    for i in range(structure.preliminary_matches):
        preliminary.append(new_match(PRELIMINARY_ROUND, teams[byes + i], teams[len(teams) - 1 - i]))

    # Bye teams first, then one entry per preliminary winner.
    entries = teams[:byes] + preliminary
    size = structure.main_bracket_size
    current_round = []
    for i in range(size // 2):
        first, second = entries[i], entries[size - 1 - i]
        match = new_match(
            structure.first_main_round_name,
            first if isinstance(first, TeamRef) else None,
            second if isinstance(second, TeamRef) else None,
        )
        if isinstance(first, Match):
            link(first, match, TEAM1)
        if isinstance(second, Match):
            link(second, match, TEAM2)
        current_round.append(match)

    teams_in_round = size
    semifinals = []
    while len(current_round) > 1:
        teams_in_round //= 2
        next_round = []
        for k in range(len(current_round) // 2):
            match = new_match(get_round_name(teams_in_round), None, None)
            link(current_round[2 * k], match, TEAM1)
            link(current_round[2 * k + 1], match, TEAM2)
            next_round.append(match)
        if len(next_round) == 1 and len(current_round) == 2:
            semifinals = current_round
        current_round = next_round

    if structure.main_bracket_size >= 4 and len(semifinals) == 2:
        third_place = new_match(THIRD_PLACE_ROUND, None, None)
        link(semifinals[0], third_place, TEAM1, LOSER)
        link(semifinals[1], third_place, TEAM2, LOSER)

    logger.info("Generated %d bracket matches for %d teams (%d byes, %d preliminary)",
                len(matches), len(teams), structure.byes, structure.preliminary_matches)
    return matches


def calculate_elimination_ranking(matches: List[Match]) -> List[Dict]:
    """
    Rank bracket teams by results: 3 points a win, 1 for taking part and a
    placement bonus for the top three.
    """
    stats = {}
    for match in matches:
        if match.status != STATUS_COMPLETED:
            continue
        points1 = sum(s.score1 or 0 for s in match.sets)
        points2 = sum(s.score2 or 0 for s in match.sets)
        sides = (
            (match.team1, match.sets_won_team1, match.sets_won_team2, points1, points2),
            (match.team2, match.sets_won_team2, match.sets_won_team1, points2, points1),
        )
        for team, won, lost, scored, conceded in sides:
            entry = stats.setdefault(team.id, {
                'team_id': team.id,
                'team_name': team.name,
                'matches_played': 0,
                'wins': 0,
                'losses': 0,
                'sets_won': 0,
                'sets_lost': 0,
                'points_scored': 0,
                'points_conceded': 0,
                'bonus_points': 0,
                'points': 0,
            })
            entry['matches_played'] += 1
            entry['sets_won'] += won
            entry['sets_lost'] += lost
            entry['points_scored'] += scored
            entry['points_conceded'] += conceded
        if match.winner_id in stats:
            stats[match.winner_id]['wins'] += 1
            stats[match.winner_id]['points'] += WIN_POINTS
        if match.loser_id in stats:
            stats[match.loser_id]['losses'] += 1

    placements = {}
    for match in matches:
        if match.status != STATUS_COMPLETED:
            continue
        if match.round == FINAL_ROUND:
            placements[1] = match.winner_id
            placements[2] = match.loser_id
        elif match.round == THIRD_PLACE_ROUND:
            placements[3] = match.winner_id

    for entry in stats.values():
        entry['bonus_points'] += PARTICIPATION_BONUS
    for place, team_id in placements.items():
        if team_id in stats:
            stats[team_id]['bonus_points'] += PLACEMENT_BONUS[place]
    for entry in stats.values():
        entry['points'] += entry['bonus_points']

    ranking = sorted(stats.values(), key=lambda e: (-e['points'], -e['sets_won'], e['sets_lost']))
    for rank, entry in enumerate(ranking, start=1):
        entry['rank'] = rank
    return ranking


def points_for_rank(rank: int, table: Optional[List] = None) -> int:
    """
    Championship points earned for a final tournament rank.

    ``table`` is a list of ``[last_rank, points]`` steps in ascending rank
    order; ranks beyond the last step get the last entry's floor (10 by default).
    """
    if rank < 1:
        raise ConfigurationError(f"Rank must be at least 1, got {rank}")
    if table is None:
        steps, floor = DEFAULT_RANK_POINTS, DEFAULT_RANK_POINTS_FLOOR
    else:
        steps = [(int(last), int(points)) for last, points in table if last is not None]
        floor = next((int(points) for last, points in table if last is None), 0)
    for last_rank, points in steps:
        if rank <= last_rank:
            return points
    return floor
