"""
Winner/loser propagation through a bracket's match graph.

Nothing here writes anywhere: scores and slot assignments are staged as a
``ScoreSubmission`` that the storage layer commits in one batch.
"""
import copy
import logging
from typing import Dict, Iterable, List, Optional

from .errors import ConflictError, InconsistentStateError
from .models import (
    LOSER, STATUS_COMPLETED, WINNER, DownstreamMatchPatch, Match, Placeholder, SetScore, TeamRef,
)
from .scoring import score_match

logger = logging.getLogger(__name__)


class BracketGraph:
    """Matches keyed by id, with the winner/loser edges between them."""

    def __init__(self, matches: Iterable[Match]):
        self._matches: Dict[str, Match] = {}
        for match in matches:
            if match.id in self._matches:
                raise InconsistentStateError(f"Duplicate match id: {match.id}")
            self._matches[match.id] = match

    @classmethod
    def from_dicts(cls, records: Iterable[Dict]) -> 'BracketGraph':
        return cls(Match.from_dict(r) for r in records)

    def __contains__(self, match_id):
        return match_id in self._matches

    def __len__(self):
        return len(self._matches)

    def get(self, match_id: str) -> Match:
        try:
            return self._matches[match_id]
        except KeyError:
            raise InconsistentStateError(f"Unknown match: {match_id}") from None

    def matches(self) -> List[Match]:
        return list(self._matches.values())

    def edges(self, match_id: str) -> List[tuple]:
        """Outgoing (target_id, slot, source_team_type) edges of a match."""
        match = self.get(match_id)
        edges = []
        if match.next_match_id:
            edges.append((match.next_match_id, match.next_match_team_slot, WINNER))
        if match.next_match_loser_id:
            edges.append((match.next_match_loser_id, match.next_match_loser_team_slot, LOSER))
        return edges


def _check_target(match: Match, target: Match, slot: str, team: TeamRef, team_type: str):
    current = target.slot(slot)
    if isinstance(current, Placeholder):
        if current.source_match_id != match.id or current.source_team_type != team_type:
            raise InconsistentStateError(
                f"Match {target.id} {slot} waits for {current.label}, not the {team_type} of {match.id}")
        return
    source = target.slot_source(slot)
    if source is None or source.source_match_id != match.id or source.source_team_type != team_type:
        raise InconsistentStateError(f"Match {target.id} {slot} is not fed by the {team_type} of {match.id}")
    if current.id != team.id:
        raise InconsistentStateError(
            f"Match {target.id} {slot} already holds {current.name}; cannot assign {team.name}")


def propagate_result(completed_match: Match, winner: Optional[TeamRef], loser: Optional[TeamRef],
                     graph: BracketGraph) -> List[DownstreamMatchPatch]:
    """
    Stage the winner into ``next_match_id`` and the loser into ``next_match_loser_id``.

    Re-propagating the team already sitting in a slot yields the same patch
    again, so a retried commit is harmless.

    Raises:
        InconsistentStateError: if the match is not completed, or a target
            slot is fed by another match or already holds a different team.
    """
    match = completed_match
    if match.status != STATUS_COMPLETED:
        raise InconsistentStateError(f"Match {match.id} is not completed")
    if winner is None or loser is None:
        if match.winner_id == match.team1.id:
            winner, loser = match.team1, match.team2
        else:
            winner, loser = match.team2, match.team1

    patches = []
    for target_id, slot, team_type in graph.edges(match.id):
        team = winner if team_type == WINNER else loser
        target = graph.get(target_id)
        _check_target(match, target, slot, team, team_type)
        patches.append(DownstreamMatchPatch(target_id, slot, team, match.id, team_type))
    logger.debug("Propagating %s: %r", match.id, patches)
    return patches


class ScoreSubmission:
    """A match's new fields plus every downstream slot they resolve."""

    def __init__(self, match_id, update, patches, expected_version=None):
        self.match_id = match_id
        self.update = update
        self.patches = list(patches)
        self.expected_version = expected_version

    def to_dict(self) -> Dict:
        return {
            'match_id': self.match_id,
            'update': self.update,
            'patches': [p.to_dict() for p in self.patches],
            'expected_version': self.expected_version,
        }

    def __repr__(self):
        return f"ScoreSubmission(match_id={self.match_id}, patches={len(self.patches)})"


def _apply_update(match: Match, update: Dict):
    for key, value in update.items():
        if key == 'sets':
            match.sets = [SetScore.from_dict(s) for s in value]
        else:
            setattr(match, key, value)


def submit_score(graph: BracketGraph, match_id: str, raw_sets) -> ScoreSubmission:
    """
    Score a match and stage the propagation its result triggers.

    A completed match may be corrected as long as the winner it already sent
    downstream stays the same.

    Raises:
        ValidationError: if the sets are malformed.
        InconsistentStateError: if the match still awaits a team, or the
            correction contradicts a filled downstream slot.
    """
    match = graph.get(match_id)
    update = score_match(match, raw_sets)

    scored = copy.deepcopy(match)
    _apply_update(scored, update)

    if scored.status == STATUS_COMPLETED:
        patches = propagate_result(scored, None, None, graph)
    else:
        patches = []
        for target_id, slot, team_type in graph.edges(match.id):
            if isinstance(graph.get(target_id).slot(slot), TeamRef):
                raise InconsistentStateError(
                    f"Match {match.id} already sent its {team_type} to {target_id}; it cannot be reopened")

    logger.info("Score staged for %s: %s (%d-%d), %d downstream patches", match.id, update['status'],
                update['sets_won_team1'], update['sets_won_team2'], len(patches))
    return ScoreSubmission(match.id, update, patches, expected_version=match.version)


def apply_submission(graph: BracketGraph, submission: ScoreSubmission) -> List[Match]:
    """Apply a staged submission to the in-memory graph; return the touched matches."""
    match = graph.get(submission.match_id)
    if submission.expected_version is not None and match.version != submission.expected_version:
        raise ConflictError(f"Match {match.id} changed since it was scored")

    # Validate every patch before mutating anything.
    targets = []
    for patch in submission.patches:
        target = graph.get(patch.match_id)
        _check_target(graph.get(patch.source_match_id), target, patch.slot, patch.team, patch.source_team_type)
        targets.append(target)

    _apply_update(match, submission.update)
    match.version += 1
    touched = [match]
    for patch, target in zip(submission.patches, targets):
        setattr(target, patch.slot, patch.team)
        target.version += 1
        touched.append(target)
    return touched
