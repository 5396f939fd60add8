"""
Multi-phase "King of the Court" tournaments.

Each phase drafts its participants into pools, plays rotating-team rounds
inside each pool, and qualifies the top finishers of every pool into the
next phase. Phase status only moves forward:
not_configured -> configured -> in_progress -> completed.
"""
import logging
import random
from itertools import combinations
from typing import Dict, List, Optional

from .errors import ConfigurationError, InconsistentStateError, ValidationError
from .models import (
    FORMAT_KOB, FORMAT_ROUND_ROBIN, KIND_KING, PHASE_COMPLETED, PHASE_CONFIGURED,
    PHASE_IN_PROGRESS, PHASE_NOT_CONFIGURED, STATUS_COMPLETED, STATUS_PENDING,
    Entrant, Match, Phase, PhaseConfig, Pool, SetScore, TeamRef,
)
from .standings import compute_standings, distribute_evenly

logger = logging.getLogger(__name__)

POOL_LETTERS = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ'


class PhaseDraw:
    """Pools and matches generated when a phase starts."""

    def __init__(self, pools: List[Pool], matches: List[Match]):
        self.pools = pools
        self.matches = matches

    def to_dict(self) -> Dict:
        return {
            'pools': [p.to_dict() for p in self.pools],
            'matches': [m.to_dict() for m in self.matches],
        }

    def __repr__(self):
        return f"PhaseDraw(pools={len(self.pools)}, matches={len(self.matches)})"


class PhaseResult:
    """Outcome of a completed phase."""

    def __init__(self, qualified_ids, repechage_candidates, ranking):
        self.qualified_ids = qualified_ids
        self.repechage_candidates = repechage_candidates
        self.ranking = ranking

    def to_dict(self) -> Dict:
        return {
            'qualified_ids': list(self.qualified_ids),
            'repechage_candidates': list(self.repechage_candidates),
            'ranking': {pool_id: [e.to_dict() for e in entries] for pool_id, entries in self.ranking.items()},
        }

    def __repr__(self):
        return f"PhaseResult(qualified={len(self.qualified_ids)}, candidates={len(self.repechage_candidates)})"


def _as_entrant(entrant) -> Entrant:
    if isinstance(entrant, Entrant):
        return entrant
    return Entrant.from_dict(entrant)


def kob_round_count(teams_per_pool: int) -> int:
    """Rounds needed for every team to meet every other once (circle method)."""
    if teams_per_pool < 2:
        return 0
    return teams_per_pool - 1 if teams_per_pool % 2 == 0 else teams_per_pool


def _snake_order(number_of_pools: int):
    while True:
        yield from range(number_of_pools)
        yield from reversed(range(number_of_pools))


def snake_draft(entrants: List, number_of_pools: int, rng: random.Random,
                capacities: Optional[List[int]] = None) -> List[List[Entrant]]:
    """
    Distribute entrants into pools balancing skill.

    Entrants are sorted by level, strongest first, with equal levels in an
    order drawn from ``rng``, then dealt 0, 1, ..., P-1, P-1, ..., 0, 0, 1, ...
    Pools that reached their capacity are skipped.
    """
    if number_of_pools <= 0:
        raise ConfigurationError("Number of pools must be positive")
    entrants = [_as_entrant(e) for e in entrants]
    if capacities is not None:
        if len(capacities) != number_of_pools:
            raise ConfigurationError(
                f"Pool distribution has {len(capacities)} entries for {number_of_pools} pools")
        if sum(capacities) < len(entrants):
            raise ConfigurationError(
                f"Pool distribution holds {sum(capacities)} entrants, {len(entrants)} to place")

    ordered = list(entrants)
    rng.shuffle(ordered)
    ordered.sort(key=lambda e: e.level_value, reverse=True)

    pools = [[] for _ in range(number_of_pools)]
    order = _snake_order(number_of_pools)
    for entrant in ordered:
        pool_index = next(order)
        if capacities is not None:
            while len(pools[pool_index]) >= capacities[pool_index]:
                pool_index = next(order)
        pools[pool_index].append(entrant)
    return pools


def _side(pool_id: str, round_number: int, index: int, members: List[TeamRef]) -> TeamRef:
    if len(members) == 1:
        return members[0]
    return TeamRef(
        id=f"{pool_id}-r{round_number}-t{index}",
        name=" / ".join(m.name for m in members),
        members=[m.id for m in members],
    )


def _chunk(players: List, size: int) -> List[List]:
    return [players[i:i + size] for i in range(0, len(players) - size + 1, size)]


def _round_robin_rounds(pool_id: str, players: List[TeamRef], team_size: int, rounds: int,
                        rng: random.Random) -> List[List[tuple]]:
    schedule = []
    for round_number in range(1, rounds + 1):
        shuffled = list(players)
        rng.shuffle(shuffled)
        sides = [_side(pool_id, round_number, k, members)
                 for k, members in enumerate(_chunk(shuffled, team_size))]
        schedule.append(list(combinations(sides, 2)))
    return schedule


def _kob_rounds(pool_id: str, players: List[TeamRef], team_size: int, rounds: int) -> List[List[tuple]]:
    schedule = []
    if team_size == 1:
        circle = list(players) + ([None] if len(players) % 2 else [])
        size = len(circle)
        for round_number in range(1, rounds + 1):
            shift = (round_number - 1) % (size - 1)
            rest = circle[1:]
            rotated = [circle[0]] + rest[-shift:] + rest[:-shift] if shift else list(circle)
            pairs = [(rotated[i], rotated[size - 1 - i]) for i in range(size // 2)]
            schedule.append([(a, b) for a, b in pairs if a is not None and b is not None])
        return schedule

    count = len(players)
    for round_number in range(1, rounds + 1):
        shift = (round_number - 1) % max(count - 1, 1)
        rest = players[1:]
        rotated = [players[0]] + rest[shift:] + rest[:shift]
        # Fold so strong and weak seeds share a side.
        folded = []
        for i in range(count // 2):
            folded.extend([rotated[i], rotated[count - 1 - i]])
        if count % 2:
            folded.append(rotated[count // 2])
        sides = [_side(pool_id, round_number, k, members)
                 for k, members in enumerate(_chunk(folded, team_size))]
        schedule.append([(sides[i], sides[i + 1]) for i in range(0, len(sides) - 1, 2)])
    return schedule


def _validate_config(config: PhaseConfig, participant_count: int) -> tuple:
    if config.number_of_pools <= 0:
        raise ConfigurationError("Number of pools must be positive")
    if config.players_per_team <= 0:
        raise ConfigurationError("Players per team must be positive")
    if config.phase_format not in (FORMAT_ROUND_ROBIN, FORMAT_KOB):
        raise ConfigurationError(f"Unknown phase format: {config.phase_format}")
    if config.min_participants and participant_count < config.min_participants:
        raise ConfigurationError(
            f"Phase {config.phase_number} needs at least {config.min_participants} participants, "
            f"got {participant_count}")
    if config.total_qualified > participant_count:
        raise ConfigurationError(
            f"Phase {config.phase_number} qualifies {config.total_qualified} of only "
            f"{participant_count} participants")

    capacities = config.pool_distribution or distribute_evenly(participant_count, config.number_of_pools)
    if len(capacities) != config.number_of_pools:
        raise ConfigurationError(
            f"Pool distribution has {len(capacities)} entries for {config.number_of_pools} pools")
    if sum(capacities) != participant_count:
        raise ConfigurationError(
            f"Pool distribution places {sum(capacities)} participants, got {participant_count}")
    for index, size in enumerate(capacities):
        if size < 2 * config.players_per_team:
            raise ConfigurationError(
                f"Pool {POOL_LETTERS[index]} has {size} participants, too few for "
                f"{config.players_per_team}v{config.players_per_team}")

    quotas = config.qualified_per_pool or distribute_evenly(config.total_qualified, config.number_of_pools)
    if len(quotas) != config.number_of_pools:
        raise ConfigurationError(
            f"Qualifier quotas have {len(quotas)} entries for {config.number_of_pools} pools")
    if sum(quotas) != config.total_qualified:
        raise ConfigurationError(
            f"Qualifier quotas sum to {sum(quotas)}, expected {config.total_qualified}")
    for index, (quota, size) in enumerate(zip(quotas, capacities)):
        if quota > size:
            raise ConfigurationError(
                f"Pool {POOL_LETTERS[index]} qualifies {quota} but holds only {size} participants")
    return capacities, quotas


def start_phase(config: PhaseConfig, participants: List, rng: Optional[random.Random] = None) -> PhaseDraw:
    """
    Draft a phase's participants into pools and generate every round.

    Raises:
        ConfigurationError: on too few participants, or pool sizes and
            qualifier quotas that do not fit the participant count.
    """
    rng = rng or random.Random()
    participants = [_as_entrant(p) for p in participants]
    if config.number_of_pools > len(POOL_LETTERS):
        raise ConfigurationError("At most 26 pools are supported")
    capacities, _ = _validate_config(config, len(participants))
    drafted = snake_draft(participants, config.number_of_pools, rng, capacities)

    pools, all_matches = [], []
    for index, members in enumerate(drafted):
        letter = POOL_LETTERS[index]
        pool_id = f"phase{config.phase_number}-{letter}"
        pool_name = f"Pool {letter}"
        players = [m.to_team(pool_name=pool_name) for m in members]

        if config.phase_format == FORMAT_KOB:
            rounds = config.rounds or kob_round_count(len(players))
            schedule = _kob_rounds(pool_id, players, config.players_per_team, rounds)
        else:
            schedule = _round_robin_rounds(pool_id, players, config.players_per_team, config.rounds or 1, rng)

        matches = []
        for round_number, pairings in enumerate(schedule, start=1):
            for team1, team2 in pairings:
                number = len(matches) + 1
                matches.append(Match(
                    id=f"{pool_id}-M{number}",
                    match_number=number,
                    round=f"Round {round_number}",
                    team1=team1,
                    team2=team2,
                    sets=[SetScore() for _ in range(config.sets_to_win)],
                    status=STATUS_PENDING,
                    sets_to_win=config.sets_to_win,
                    points_per_set=config.points_per_set,
                    tie_break_enabled=config.tie_break_enabled,
                    kind=KIND_KING,
                    pool_id=pool_id,
                    round_number=round_number,
                ))
        pools.append(Pool(pool_id, pool_name, teams=players, matches=matches))
        all_matches.extend(matches)

    logger.info("Phase %d started: %d participants, %d pools, %d matches", config.phase_number,
                len(participants), len(pools), len(all_matches))
    return PhaseDraw(pools, all_matches)


def complete_phase(phase: Phase, pools: List[Pool], matches: List[Match]) -> PhaseResult:
    """
    Rank every pool of a finished phase and pick its qualifiers.

    Raises:
        ValidationError: if the phase is not in progress or a match is unfinished.
    """
    if phase.status != PHASE_IN_PROGRESS:
        raise ValidationError(f"Phase {phase.phase_number} is {phase.status}, not in progress")
    unfinished = [m.id for m in matches if m.status != STATUS_COMPLETED]
    if unfinished:
        raise ValidationError(
            f"Phase {phase.phase_number} has {len(unfinished)} unfinished matches: {', '.join(unfinished[:5])}")

    config = phase.config
    quotas = config.qualified_per_pool or distribute_evenly(config.total_qualified, len(pools))
    if len(quotas) != len(pools):
        raise ConfigurationError(f"Qualifier quotas have {len(quotas)} entries for {len(pools)} pools")

    withdrawn = set(phase.withdrawn_ids)
    qualified_ids, leftovers, ranking = [], [], {}
    for pool, quota in zip(pools, quotas):
        pool_matches = [m for m in matches if m.pool_id == pool.id]
        standings = compute_standings(Pool(pool.id, pool.name, pool.teams, pool_matches))
        # Rotating sides are credited to members; keep only the pool's own entrants.
        member_ids = {t.id for t in pool.teams}
        standings = [e for e in standings if e.team_id in member_ids]
        for rank, entry in enumerate(standings, start=1):
            entry.rank = rank
        ranking[pool.id] = standings
        qualified_ids.extend(e.team_id for e in standings[:quota])
        leftovers.extend(e for e in standings[quota:] if e.team_id not in withdrawn)

    leftovers.sort(key=lambda e: (-e.wins, -e.sets_won, e.sets_lost))
    candidates = []
    for rank, entry in enumerate(leftovers, start=1):
        candidate = entry.to_dict()
        candidate['rank'] = rank
        candidates.append(candidate)

    logger.info("Phase %d completed: %d qualified, %d repechage candidates", phase.phase_number,
                len(qualified_ids), len(candidates))
    return PhaseResult(qualified_ids, candidates, ranking)


class KingTournament:
    """Registered entrants plus the ordered list of phases."""

    def __init__(self, entrants: List, phases: Optional[List[Phase]] = None):
        self.entrants = [_as_entrant(e) for e in entrants]
        self.phases = sorted(phases or [], key=lambda p: p.phase_number)

    def get_phase(self, phase_number: int) -> Phase:
        for phase in self.phases:
            if phase.phase_number == phase_number:
                return phase
        raise ConfigurationError(f"Phase {phase_number} not found")

    def _next_phase(self, phase_number: int) -> Optional[Phase]:
        for phase in self.phases:
            if phase.phase_number == phase_number + 1:
                return phase
        return None

    def _entrants_by_id(self, ids: List[str]) -> List[Entrant]:
        known = {e.id: e for e in self.entrants}
        missing = [pid for pid in ids if pid not in known]
        if missing:
            raise ConfigurationError(f"Unknown entrants: {', '.join(missing)}")
        return [known[pid] for pid in ids]

    def configure_phase(self, config: PhaseConfig) -> Phase:
        number = config.phase_number
        if number < 1 or number > len(self.phases) + 1:
            raise ConfigurationError(f"Phase {number} cannot follow {len(self.phases)} configured phases")
        if number == len(self.phases) + 1:
            phase = Phase(number)
            self.phases.append(phase)
        else:
            phase = self.get_phase(number)
        if phase.status not in (PHASE_NOT_CONFIGURED, PHASE_CONFIGURED):
            raise InconsistentStateError(f"Phase {number} is already {phase.status}")
        phase.config = config
        phase.status = PHASE_CONFIGURED
        logger.debug("Phase %d configured: %r", number, config)
        return phase

    def participants_for(self, phase_number: int) -> List[str]:
        """Entrant ids that will play a phase: everyone for phase 1, else the adjusted qualifiers."""
        if phase_number == 1:
            return [e.id for e in self.entrants]
        previous = self.get_phase(phase_number - 1)
        if previous.status != PHASE_COMPLETED:
            raise InconsistentStateError(f"Phase {previous.phase_number} is not completed")
        return previous.advancing_ids()

    def begin_phase(self, phase_number: int, rng: Optional[random.Random] = None) -> PhaseDraw:
        phase = self.get_phase(phase_number)
        if phase.status == PHASE_NOT_CONFIGURED:
            raise ConfigurationError(f"Phase {phase_number} is not configured")
        if phase.status != PHASE_CONFIGURED:
            raise InconsistentStateError(f"Phase {phase_number} is already {phase.status}")

        participant_ids = self.participants_for(phase_number)
        draw = start_phase(phase.config, self._entrants_by_id(participant_ids), rng)
        phase.participant_ids = participant_ids
        phase.status = PHASE_IN_PROGRESS
        return draw

    def finish_phase(self, phase_number: int, pools: List[Pool], matches: List[Match]) -> PhaseResult:
        phase = self.get_phase(phase_number)
        result = complete_phase(phase, pools, matches)
        phase.qualified_ids = list(result.qualified_ids)
        phase.candidate_ids = [c['team_id'] for c in result.repechage_candidates]
        phase.status = PHASE_COMPLETED
        return result

    def _check_adjustable(self, phase: Phase):
        if phase.status != PHASE_COMPLETED:
            raise InconsistentStateError(f"Phase {phase.phase_number} is not completed")
        following = self._next_phase(phase.phase_number)
        if following is not None and following.status in (PHASE_IN_PROGRESS, PHASE_COMPLETED):
            raise InconsistentStateError(f"Phase {following.phase_number} has already started")

    def set_withdrawals(self, phase_number: int, withdrawn_ids: List[str]) -> Phase:
        """Replace the qualifiers withdrawn before the next phase."""
        phase = self.get_phase(phase_number)
        self._check_adjustable(phase)
        unknown = [pid for pid in withdrawn_ids if pid not in phase.qualified_ids and pid not in phase.repeched_ids]
        if unknown:
            raise ValidationError(f"Not qualified from phase {phase_number}: {', '.join(unknown)}")
        phase.withdrawn_ids = list(dict.fromkeys(withdrawn_ids))
        return phase

    def set_repechages(self, phase_number: int, repeched_ids: List[str]) -> Phase:
        """Replace the non-qualified entrants brought back into the next phase."""
        phase = self.get_phase(phase_number)
        self._check_adjustable(phase)
        invalid = [pid for pid in repeched_ids
                   if pid not in phase.candidate_ids or pid in phase.withdrawn_ids]
        if invalid:
            raise ValidationError(f"Not repechage candidates of phase {phase_number}: {', '.join(invalid)}")
        phase.repeched_ids = list(dict.fromkeys(repeched_ids))
        return phase

    def validate_phase_chain(self) -> List[str]:
        """Check that each phase qualifies as many entrants as the next one expects."""
        errors = []
        configured = [p for p in self.phases if p.config is not None]
        for current, following in zip(configured, configured[1:]):
            expected = following.config.min_participants
            if following.config.pool_distribution:
                expected = sum(following.config.pool_distribution)
            if expected and current.config.total_qualified != expected:
                errors.append(
                    f"Phase {current.phase_number} qualifies {current.config.total_qualified} players, "
                    f"but Phase {following.phase_number} expects {expected} players")
        return errors

    def to_dict(self) -> Dict:
        return {
            'entrants': [e.to_dict() for e in self.entrants],
            'phases': [p.to_dict() for p in self.phases],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'KingTournament':
        return cls(
            entrants=data.get('entrants', []),
            phases=[Phase.from_dict(p) for p in data.get('phases', [])],
        )

    def __repr__(self):
        return f"KingTournament(entrants={len(self.entrants)}, phases={len(self.phases)})"
