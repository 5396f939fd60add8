"""
Tournament progression engine: brackets, scoring, propagation, standings
and multi-phase King tournaments.
"""
from .errors import (
    ConfigurationError, ConflictError, InconsistentStateError, TournamentError, ValidationError,
)
from .elimination import (
    calculate_elimination_ranking, compute_bracket_structure, generate_bracket, points_for_rank,
)
from .king import KingTournament, complete_phase, kob_round_count, snake_draft, start_phase
from .propagation import BracketGraph, apply_submission, propagate_result, submit_score
from .scoring import parse_sets, resolve_match_outcome, resolve_set_winner, score_match
from .standings import compute_standings, distribute_evenly, generate_pool_matches, select_qualified_teams
