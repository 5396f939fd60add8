"""
Unit tests for set and match outcome resolution.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.errors import InconsistentStateError, ValidationError
from progression.models import Match, Placeholder, SetScore, TeamRef
from progression.scoring import parse_sets, resolve_match_outcome, resolve_set_winner, score_match


class TestSetWinner:
    """Tests for single set resolution."""

    def test_tie_break_requires_two_point_lead(self):
        """21-20 with tie-break is not over yet."""
        assert resolve_set_winner(21, 20, 21, True) is None

    def test_tie_break_win_by_two(self):
        """22-20 with tie-break goes to side 1."""
        assert resolve_set_winner(22, 20, 21, True) == 1

    def test_tie_break_side_two(self):
        """Side 2 can win with a two point lead past the target."""
        assert resolve_set_winner(25, 27, 21, True) == 2

    def test_without_tie_break_first_to_target_wins(self):
        """Without tie-break 21-20 is a win."""
        assert resolve_set_winner(21, 20, 21, False) == 1
        assert resolve_set_winner(19, 21, 21, False) == 2

    def test_below_target_is_undecided(self):
        """Nobody wins before reaching the target."""
        assert resolve_set_winner(20, 5, 21, False) is None
        assert resolve_set_winner(20, 5, 21, True) is None

    def test_unplayed_set(self):
        """A missing score means the set has not been played."""
        assert resolve_set_winner(None, None, 21, True) is None
        assert resolve_set_winner(21, None, 21, False) is None

    def test_equal_scores_past_target_without_tie_break(self):
        """Equal scores decide nothing."""
        assert resolve_set_winner(21, 21, 21, False) is None


class TestParseSets:
    """Tests for raw set validation."""

    def test_accepts_dicts_and_pairs(self):
        """Both set shapes are accepted."""
        sets = parse_sets([{'score1': 21, 'score2': 15}, [18, 21]])
        assert sets == [SetScore(21, 15), SetScore(18, 21)]

    def test_numeric_strings_are_converted(self):
        """Form input arrives as strings."""
        assert parse_sets([['21', ' 19 ']]) == [SetScore(21, 19)]

    def test_both_empty_is_unplayed(self):
        """A set with both sides empty is kept as unplayed."""
        sets = parse_sets([[21, 10], [None, None], ['', '']])
        assert sets[1] == SetScore()
        assert not sets[2].played

    def test_not_a_list(self):
        """Sets must be a list."""
        with pytest.raises(ValidationError):
            parse_sets({'score1': 21, 'score2': 10})
        with pytest.raises(ValidationError):
            parse_sets(None)

    def test_one_side_scored(self):
        """One score filled and one empty is rejected."""
        with pytest.raises(ValidationError, match="both scores"):
            parse_sets([[21, None]])
        with pytest.raises(ValidationError):
            parse_sets([{'score1': '', 'score2': 12}])

    def test_negative_score(self):
        """Negative scores are rejected."""
        with pytest.raises(ValidationError):
            parse_sets([[-1, 21]])

    def test_non_numeric_score(self):
        """Text and booleans are not scores."""
        with pytest.raises(ValidationError):
            parse_sets([['abc', 21]])
        with pytest.raises(ValidationError):
            parse_sets([[True, 21]])

    def test_superscript_digit_is_not_a_score(self):
        """Digit-like characters that int() cannot parse are a validation error."""
        with pytest.raises(ValidationError):
            parse_sets([['²', 21]])
        with pytest.raises(ValidationError):
            parse_sets([{'score1': '21', 'score2': '1²'}])

    def test_wrong_shape(self):
        """A set needs exactly two scores."""
        with pytest.raises(ValidationError):
            parse_sets([[21, 10, 5]])
        with pytest.raises(ValidationError):
            parse_sets([{'score1': 21}])


class TestMatchOutcome:
    """Tests for aggregating sets into a match result."""

    def test_three_sets_played_out(self):
        """21-10, 18-21, 21-15 with three sets to win completes for team 1."""
        outcome = resolve_match_outcome([[21, 10], [18, 21], [21, 15]], 3, 21, True, 'A', 'B')
        assert outcome.status == 'completed'
        assert outcome.sets_won_team1 == 2
        assert outcome.sets_won_team2 == 1
        assert outcome.winner_id == 'A'
        assert outcome.loser_id == 'B'

    def test_best_of_three_reaches_threshold(self):
        """Two sets to win: 2-0 completes the match."""
        outcome = resolve_match_outcome([[21, 10], [21, 12], [None, None]], 2, 21, True, 'A', 'B')
        assert outcome.status == 'completed'
        assert outcome.winner_id == 'A'

    def test_in_progress(self):
        """One set decided out of two needed."""
        outcome = resolve_match_outcome([[15, 21], [None, None], [None, None]], 2, 21, True, 'A', 'B')
        assert outcome.status == 'in_progress'
        assert outcome.sets_won_team2 == 1
        assert outcome.winner_id is None
        assert outcome.loser_id is None

    def test_pending(self):
        """No decided set means pending."""
        outcome = resolve_match_outcome([[None, None], [21, 20]], 2, 21, True, 'A', 'B')
        assert outcome.status == 'pending'
        assert outcome.winner_id is None and outcome.loser_id is None

    def test_single_set_pool_match(self):
        """One set to win: the set winner takes the match."""
        outcome = resolve_match_outcome([[17, 21]], 1, 21, False, 'A', 'B')
        assert outcome.status == 'completed'
        assert outcome.winner_id == 'B'
        assert outcome.loser_id == 'A'

    def test_tied_sets_stay_in_progress(self):
        """1-1 after two sets of a three-set match is not completed."""
        outcome = resolve_match_outcome([[21, 10], [10, 21], [None, None]], 2, 21, True, 'A', 'B')
        assert outcome.status == 'in_progress'

    def test_malformed_sets_rejected(self):
        """Validation happens before aggregation."""
        with pytest.raises(ValidationError):
            resolve_match_outcome([[21, None]], 1, 21, False, 'A', 'B')

    def test_completed_winner_and_loser_distinct(self):
        """A completed outcome names two different teams."""
        outcome = resolve_match_outcome([[10, 21], [12, 21]], 2, 21, True, 'A', 'B')
        assert outcome.winner_id != outcome.loser_id
        assert {outcome.winner_id, outcome.loser_id} == {'A', 'B'}


class TestScoreMatch:
    """Tests for building a stored match's score update."""

    def make_match(self, team2=None):
        return Match(
            id='M1', match_number=1, round='Final',
            team1=TeamRef('A', 'Alpha'),
            team2=team2 or TeamRef('B', 'Bravo'),
            sets_to_win=2, points_per_set=21, tie_break_enabled=True,
        )

    def test_update_includes_names(self):
        """The winner and loser names come from the slots."""
        update = score_match(self.make_match(), [[21, 15], [19, 21], [15, 10]])
        assert update['status'] == 'in_progress'

        update = score_match(self.make_match(), [[21, 15], [21, 19]])
        assert update['status'] == 'completed'
        assert update['winner_name'] == 'Alpha'
        assert update['loser_name'] == 'Bravo'
        assert update['sets'] == [{'score1': 21, 'score2': 15}, {'score1': 21, 'score2': 19}]

    def test_placeholder_slot_cannot_be_scored(self):
        """A match still waiting for a team cannot take a score."""
        match = self.make_match(team2=Placeholder('M0', 'winner'))
        with pytest.raises(InconsistentStateError):
            score_match(match, [[21, 15]])
