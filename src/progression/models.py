"""
Data models for teams, matches, pools and phases.

Records round-trip through plain dicts (``to_dict``/``from_dict``) because the
storage and HTTP layers exchange JSON/YAML-shaped documents.
"""
from typing import Dict, List, Optional, Union

WINNER = 'winner'
LOSER = 'loser'

TEAM1 = 'team1'
TEAM2 = 'team2'

STATUS_SCHEDULED = 'scheduled'
STATUS_PENDING = 'pending'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETED = 'completed'
NOT_STARTED = (STATUS_SCHEDULED, STATUS_PENDING)

KIND_POOL = 'pool'
KIND_ELIMINATION = 'elimination'
KIND_KING = 'king'


class TeamRef:
    """A concrete team in a match slot.

    ``members`` holds player ids when the side was formed from individual
    entrants (King phases); fixed teams leave it empty.
    """

    def __init__(self, id, name, pool_name=None, members=None):
        self.id = id
        self.name = name
        self.pool_name = pool_name
        self.members = list(members) if members else []

    def credited_ids(self) -> List[str]:
        """Ids that receive standings credit for this side."""
        return list(self.members) if self.members else [self.id]

    def to_dict(self) -> Dict:
        data = {'id': self.id, 'name': self.name}
        if self.pool_name is not None:
            data['pool_name'] = self.pool_name
        if self.members:
            data['members'] = list(self.members)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'TeamRef':
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            pool_name=data.get('pool_name'),
            members=data.get('members'),
        )

    def __eq__(self, other):
        return isinstance(other, TeamRef) and self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"TeamRef(id={self.id}, name={self.name})"


class Placeholder:
    """A slot waiting for the winner or loser of another match."""

    def __init__(self, source_match_id, source_team_type=WINNER, label=None):
        if source_team_type not in (WINNER, LOSER):
            raise ValueError(f"source_team_type must be '{WINNER}' or '{LOSER}'")
        self.source_match_id = source_match_id
        self.source_team_type = source_team_type
        self.label = label or f"{source_team_type.capitalize()} {source_match_id}"

    def to_dict(self) -> Dict:
        return {
            'id': None,
            'name': self.label,
            'source_match_id': self.source_match_id,
            'source_team_type': self.source_team_type,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Placeholder':
        return cls(data['source_match_id'], data.get('source_team_type', WINNER), data.get('name'))

    def __eq__(self, other):
        return (isinstance(other, Placeholder)
                and self.source_match_id == other.source_match_id
                and self.source_team_type == other.source_team_type)

    def __hash__(self):
        return hash((self.source_match_id, self.source_team_type))

    def __repr__(self):
        return f"Placeholder(source_match_id={self.source_match_id}, source_team_type={self.source_team_type})"


Slot = Union[TeamRef, Placeholder]


def slot_from_dict(data: Optional[Dict]) -> Optional[Slot]:
    """Rebuild a match slot; a record without an id but with a source is a placeholder."""
    if data is None:
        return None
    if data.get('id') is None and data.get('source_match_id'):
        return Placeholder.from_dict(data)
    return TeamRef.from_dict(data)


def is_resolved(slot) -> bool:
    return isinstance(slot, TeamRef)


class SetScore:
    """Points of each side in one set; both None when the set was not played."""

    def __init__(self, score1=None, score2=None):
        self.score1 = score1
        self.score2 = score2

    @property
    def played(self) -> bool:
        return self.score1 is not None and self.score2 is not None

    def to_dict(self) -> Dict:
        return {'score1': self.score1, 'score2': self.score2}

    @classmethod
    def from_dict(cls, data: Dict) -> 'SetScore':
        return cls(data.get('score1'), data.get('score2'))

    def __eq__(self, other):
        return (isinstance(other, SetScore)
                and self.score1 == other.score1 and self.score2 == other.score2)

    def __repr__(self):
        return f"SetScore({self.score1}-{self.score2})"


class Match:
    def __init__(self, id, match_number, round, team1, team2, sets=None,
                 status=STATUS_SCHEDULED, sets_to_win=1, points_per_set=21,
                 tie_break_enabled=False, kind=KIND_ELIMINATION, pool_id=None,
                 round_number=None, next_match_id=None, next_match_team_slot=None,
                 next_match_loser_id=None, next_match_loser_team_slot=None,
                 winner_id=None, loser_id=None, winner_name=None, loser_name=None,
                 sets_won_team1=0, sets_won_team2=0, version=0):
        self.id = id
        self.match_number = match_number
        self.round = round
        self.team1 = team1
        self.team2 = team2
        self.sets = list(sets) if sets else []
        self.status = status
        self.sets_to_win = sets_to_win
        self.points_per_set = points_per_set
        self.tie_break_enabled = tie_break_enabled
        self.kind = kind
        self.pool_id = pool_id
        self.round_number = round_number
        self.next_match_id = next_match_id
        self.next_match_team_slot = next_match_team_slot
        self.next_match_loser_id = next_match_loser_id
        self.next_match_loser_team_slot = next_match_loser_team_slot
        self.winner_id = winner_id
        self.loser_id = loser_id
        self.winner_name = winner_name
        self.loser_name = loser_name
        self.sets_won_team1 = sets_won_team1
        self.sets_won_team2 = sets_won_team2
        self.version = version
        # Lineage survives slot resolution so corrections can be checked.
        self.team1_source = team1 if isinstance(team1, Placeholder) else None
        self.team2_source = team2 if isinstance(team2, Placeholder) else None

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def is_playable(self) -> bool:
        return is_resolved(self.team1) and is_resolved(self.team2)

    def slot(self, name: str) -> Slot:
        if name not in (TEAM1, TEAM2):
            raise ValueError(f"Unknown slot: {name}")
        return getattr(self, name)

    def slot_source(self, name: str) -> Optional[Placeholder]:
        return getattr(self, f"{name}_source")

    def to_dict(self) -> Dict:
        data = {
            'id': self.id,
            'match_number': self.match_number,
            'round': self.round,
            'team1': self.team1.to_dict(),
            'team2': self.team2.to_dict(),
            'sets': [s.to_dict() for s in self.sets],
            'status': self.status,
            'sets_to_win': self.sets_to_win,
            'points_per_set': self.points_per_set,
            'tie_break_enabled': self.tie_break_enabled,
            'kind': self.kind,
            'sets_won_team1': self.sets_won_team1,
            'sets_won_team2': self.sets_won_team2,
            'winner_id': self.winner_id,
            'loser_id': self.loser_id,
            'winner_name': self.winner_name,
            'loser_name': self.loser_name,
            'version': self.version,
        }
        optional = {
            'pool_id': self.pool_id,
            'round_number': self.round_number,
            'next_match_id': self.next_match_id,
            'next_match_team_slot': self.next_match_team_slot,
            'next_match_loser_id': self.next_match_loser_id,
            'next_match_loser_team_slot': self.next_match_loser_team_slot,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.team1_source is not None:
            data['team1_source'] = self.team1_source.to_dict()
        if self.team2_source is not None:
            data['team2_source'] = self.team2_source.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        match = cls(
            id=data['id'],
            match_number=data.get('match_number', 0),
            round=data.get('round'),
            team1=slot_from_dict(data['team1']),
            team2=slot_from_dict(data['team2']),
            sets=[SetScore.from_dict(s) for s in data.get('sets', [])],
            status=data.get('status', STATUS_SCHEDULED),
            sets_to_win=data.get('sets_to_win', 1),
            points_per_set=data.get('points_per_set', 21),
            tie_break_enabled=data.get('tie_break_enabled', False),
            kind=data.get('kind', KIND_ELIMINATION),
            pool_id=data.get('pool_id'),
            round_number=data.get('round_number'),
            next_match_id=data.get('next_match_id'),
            next_match_team_slot=data.get('next_match_team_slot'),
            next_match_loser_id=data.get('next_match_loser_id'),
            next_match_loser_team_slot=data.get('next_match_loser_team_slot'),
            winner_id=data.get('winner_id'),
            loser_id=data.get('loser_id'),
            winner_name=data.get('winner_name'),
            loser_name=data.get('loser_name'),
            sets_won_team1=data.get('sets_won_team1', 0),
            sets_won_team2=data.get('sets_won_team2', 0),
            version=data.get('version', 0),
        )
        if data.get('team1_source'):
            match.team1_source = Placeholder.from_dict(data['team1_source'])
        if data.get('team2_source'):
            match.team2_source = Placeholder.from_dict(data['team2_source'])
        return match

    def __repr__(self):
        return (f"Match(id={self.id}, round={self.round}, team1={self.team1!r}, "
                f"team2={self.team2!r}, status={self.status})")


class Pool:
    def __init__(self, id, name, teams=None, matches=None):
        self.id = id
        self.name = name
        self.teams = list(teams) if teams else []
        self.matches = list(matches) if matches else []

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'teams': [t.to_dict() for t in self.teams],
            'matches': [m.to_dict() for m in self.matches],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Pool':
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            teams=[TeamRef.from_dict(t) for t in data.get('teams', [])],
            matches=[Match.from_dict(m) for m in data.get('matches', [])],
        )

    def __repr__(self):
        return f"Pool(id={self.id}, teams={len(self.teams)}, matches={len(self.matches)})"


class StandingEntry:
    POINTS_PER_WIN = 3

    def __init__(self, team_id, team_name=None):
        self.team_id = team_id
        self.team_name = team_name or team_id
        self.rank = 0
        self.matches_played = 0
        self.wins = 0
        self.losses = 0
        self.sets_won = 0
        self.sets_lost = 0
        self.points_scored = 0
        self.points_conceded = 0

    @property
    def points(self) -> int:
        return self.wins * self.POINTS_PER_WIN

    @property
    def set_diff(self) -> int:
        return self.sets_won - self.sets_lost

    @property
    def point_diff(self) -> int:
        return self.points_scored - self.points_conceded

    def to_dict(self) -> Dict:
        return {
            'team_id': self.team_id,
            'team_name': self.team_name,
            'rank': self.rank,
            'matches_played': self.matches_played,
            'wins': self.wins,
            'losses': self.losses,
            'points': self.points,
            'sets_won': self.sets_won,
            'sets_lost': self.sets_lost,
            'set_diff': self.set_diff,
            'points_scored': self.points_scored,
            'points_conceded': self.points_conceded,
            'point_diff': self.point_diff,
        }

    def __repr__(self):
        return f"StandingEntry(team_id={self.team_id}, rank={self.rank}, points={self.points})"


class BracketStructure:
    def __init__(self, total_slots, byes, preliminary_matches, main_bracket_size,
                 first_main_round_name, teams_playing_preliminary):
        self.total_slots = total_slots
        self.byes = byes
        self.preliminary_matches = preliminary_matches
        self.main_bracket_size = main_bracket_size
        self.first_main_round_name = first_main_round_name
        self.teams_playing_preliminary = teams_playing_preliminary

    def to_dict(self) -> Dict:
        return {
            'total_slots': self.total_slots,
            'byes': self.byes,
            'preliminary_matches': self.preliminary_matches,
            'main_bracket_size': self.main_bracket_size,
            'first_main_round_name': self.first_main_round_name,
            'teams_playing_preliminary': self.teams_playing_preliminary,
        }

    def __repr__(self):
        return (f"BracketStructure(total_slots={self.total_slots}, byes={self.byes}, "
                f"preliminary_matches={self.preliminary_matches}, "
                f"main_bracket_size={self.main_bracket_size})")


class DownstreamMatchPatch:
    """Assignment of a concrete team into a slot of a downstream match."""

    def __init__(self, match_id, slot, team, source_match_id, source_team_type):
        self.match_id = match_id
        self.slot = slot
        self.team = team
        self.source_match_id = source_match_id
        self.source_team_type = source_team_type

    def to_update(self) -> Dict:
        """Field update for the storage collaborator."""
        return {self.slot: self.team.to_dict()}

    def to_dict(self) -> Dict:
        return {
            'match_id': self.match_id,
            'slot': self.slot,
            'team': self.team.to_dict(),
            'source_match_id': self.source_match_id,
            'source_team_type': self.source_team_type,
        }

    def __repr__(self):
        return (f"DownstreamMatchPatch(match_id={self.match_id}, slot={self.slot}, "
                f"team={self.team.id}, source={self.source_match_id}/{self.source_team_type})")


LEVELS = {'beginner': 1, 'intermediate': 2, 'advanced': 3, 'expert': 4}


class Entrant:
    """A registered player, or a fixed team in team-King mode."""

    def __init__(self, id, name=None, level=0):
        self.id = id
        self.name = name or id
        self.level = level

    @property
    def level_value(self) -> int:
        if isinstance(self.level, str):
            return LEVELS.get(self.level.lower(), 0)
        return int(self.level or 0)

    def to_team(self, pool_name=None) -> TeamRef:
        return TeamRef(self.id, self.name, pool_name=pool_name)

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name, 'level': self.level}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Entrant':
        return cls(data['id'], data.get('name'), data.get('level', 0))

    def __repr__(self):
        return f"Entrant(id={self.id}, level={self.level})"


PHASE_NOT_CONFIGURED = 'not_configured'
PHASE_CONFIGURED = 'configured'
PHASE_IN_PROGRESS = 'in_progress'
PHASE_COMPLETED = 'completed'
PHASE_STATUSES = (PHASE_NOT_CONFIGURED, PHASE_CONFIGURED, PHASE_IN_PROGRESS, PHASE_COMPLETED)

FORMAT_ROUND_ROBIN = 'round-robin'
FORMAT_KOB = 'kob'


class PhaseConfig:
    """Settings of one King phase.

    ``qualified_per_pool`` defaults to an even split of ``total_qualified``;
    ``pool_distribution`` optionally fixes how many entrants each pool holds.
    """

    def __init__(self, phase_number, number_of_pools, players_per_team, total_qualified,
                 phase_format=FORMAT_ROUND_ROBIN, rounds=None, qualified_per_pool=None,
                 pool_distribution=None, min_participants=None, sets_to_win=1,
                 points_per_set=21, tie_break_enabled=False):
        self.phase_number = phase_number
        self.number_of_pools = number_of_pools
        self.players_per_team = players_per_team
        self.total_qualified = total_qualified
        self.phase_format = phase_format
        self.rounds = rounds
        self.qualified_per_pool = list(qualified_per_pool) if qualified_per_pool else None
        self.pool_distribution = list(pool_distribution) if pool_distribution else None
        self.min_participants = min_participants
        self.sets_to_win = sets_to_win
        self.points_per_set = points_per_set
        self.tie_break_enabled = tie_break_enabled

    def to_dict(self) -> Dict:
        return {
            'phase_number': self.phase_number,
            'number_of_pools': self.number_of_pools,
            'players_per_team': self.players_per_team,
            'total_qualified': self.total_qualified,
            'phase_format': self.phase_format,
            'rounds': self.rounds,
            'qualified_per_pool': self.qualified_per_pool,
            'pool_distribution': self.pool_distribution,
            'min_participants': self.min_participants,
            'sets_to_win': self.sets_to_win,
            'points_per_set': self.points_per_set,
            'tie_break_enabled': self.tie_break_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'PhaseConfig':
        return cls(
            phase_number=data['phase_number'],
            number_of_pools=data['number_of_pools'],
            players_per_team=data.get('players_per_team', 1),
            total_qualified=data['total_qualified'],
            phase_format=data.get('phase_format', FORMAT_ROUND_ROBIN),
            rounds=data.get('rounds'),
            qualified_per_pool=data.get('qualified_per_pool'),
            pool_distribution=data.get('pool_distribution'),
            min_participants=data.get('min_participants'),
            sets_to_win=data.get('sets_to_win', 1),
            points_per_set=data.get('points_per_set', 21),
            tie_break_enabled=data.get('tie_break_enabled', False),
        )

    def __repr__(self):
        return (f"PhaseConfig(phase={self.phase_number}, pools={self.number_of_pools}, "
                f"team_size={self.players_per_team}, qualified={self.total_qualified})")


class Phase:
    def __init__(self, phase_number, config=None, participant_ids=None, qualified_ids=None,
                 withdrawn_ids=None, repeched_ids=None, candidate_ids=None,
                 status=PHASE_NOT_CONFIGURED):
        self.phase_number = phase_number
        self.config = config
        self.participant_ids = list(participant_ids) if participant_ids else []
        self.qualified_ids = list(qualified_ids) if qualified_ids else []
        self.withdrawn_ids = list(withdrawn_ids) if withdrawn_ids else []
        self.repeched_ids = list(repeched_ids) if repeched_ids else []
        self.candidate_ids = list(candidate_ids) if candidate_ids else []
        self.status = status

    def advancing_ids(self) -> List[str]:
        """Qualified ids adjusted for withdrawals and repêchages."""
        withdrawn = set(self.withdrawn_ids)
        ids = [pid for pid in self.qualified_ids if pid not in withdrawn]
        ids.extend(pid for pid in self.repeched_ids if pid not in ids and pid not in withdrawn)
        return ids

    def to_dict(self) -> Dict:
        return {
            'phase_number': self.phase_number,
            'config': self.config.to_dict() if self.config else None,
            'participant_ids': list(self.participant_ids),
            'qualified_ids': list(self.qualified_ids),
            'withdrawn_ids': list(self.withdrawn_ids),
            'repeched_ids': list(self.repeched_ids),
            'candidate_ids': list(self.candidate_ids),
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Phase':
        config = data.get('config')
        return cls(
            phase_number=data['phase_number'],
            config=PhaseConfig.from_dict(config) if config else None,
            participant_ids=data.get('participant_ids'),
            qualified_ids=data.get('qualified_ids'),
            withdrawn_ids=data.get('withdrawn_ids'),
            repeched_ids=data.get('repeched_ids'),
            candidate_ids=data.get('candidate_ids'),
            status=data.get('status', PHASE_NOT_CONFIGURED),
        )

    def __repr__(self):
        return f"Phase(number={self.phase_number}, status={self.status})"
