"""
Unit tests for single elimination bracket generation.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.elimination import (
    calculate_bracket_size,
    calculate_elimination_ranking,
    compute_bracket_structure,
    generate_bracket,
    get_round_name,
    points_for_rank,
)
from progression.errors import ConfigurationError
from progression.models import Placeholder, SetScore, TeamRef


def _names(matches):
    return [m.round for m in matches]


def _complete(match, winner_side, sets=None):
    """Mark a bracket match completed with the given side winning."""
    match.status = 'completed'
    match.sets = sets or [SetScore(21, 10) if winner_side == 1 else SetScore(10, 21)] * 2
    won = len(match.sets)
    match.sets_won_team1, match.sets_won_team2 = (won, 0) if winner_side == 1 else (0, won)
    winner, loser = (match.team1, match.team2) if winner_side == 1 else (match.team2, match.team1)
    match.winner_id, match.loser_id = winner.id, loser.id


class TestBracketHelpers:
    """Tests for bracket helper functions."""

    def test_get_round_name(self):
        """Round names come from the number of teams in the round."""
        assert get_round_name(2) == "Final"
        assert get_round_name(4) == "Semifinal"
        assert get_round_name(8) == "Quarterfinal"
        assert get_round_name(16) == "Round of 16"
        assert get_round_name(32) == "Round of 32"
        assert get_round_name(64) == "Round of 64"

    def test_calculate_bracket_size(self):
        """Bracket size rounds up to the next power of 2."""
        assert calculate_bracket_size(2) == 2
        assert calculate_bracket_size(3) == 4
        assert calculate_bracket_size(5) == 8
        assert calculate_bracket_size(8) == 8
        assert calculate_bracket_size(9) == 16


class TestBracketStructure:
    """Tests for compute_bracket_structure."""

    @pytest.mark.parametrize("count", range(2, 70))
    def test_total_slots_power_of_two(self, count):
        """Total slots is the smallest power of two holding every team."""
        structure = compute_bracket_structure(count)
        slots = structure.total_slots
        assert slots >= count
        assert slots & (slots - 1) == 0
        assert slots // 2 < count
        assert structure.byes == slots - count
        assert structure.teams_playing_preliminary == count - structure.byes
        assert structure.teams_playing_preliminary % 2 == 0
        assert structure.preliminary_matches == structure.teams_playing_preliminary // 2
        assert structure.main_bracket_size == slots // 2

    def test_five_teams(self):
        """5 teams: 8 slots, 3 byes, 1 preliminary match."""
        structure = compute_bracket_structure(5)
        assert structure.total_slots == 8
        assert structure.byes == 3
        assert structure.preliminary_matches == 1
        assert structure.main_bracket_size == 4
        assert structure.first_main_round_name == "Semifinal"

    def test_twelve_teams(self):
        """12 teams: 4 byes and 4 preliminary matches into a quarterfinal."""
        structure = compute_bracket_structure(12)
        assert structure.byes == 4
        assert structure.preliminary_matches == 4
        assert structure.first_main_round_name == "Quarterfinal"

    @pytest.mark.parametrize("count", [0, 1, -3])
    def test_too_few_teams(self, count):
        """Fewer than 2 teams is a configuration error."""
        with pytest.raises(ConfigurationError):
            compute_bracket_structure(count)


class TestGenerateBracket:
    """Tests for full bracket generation."""

    @pytest.mark.parametrize("count", range(2, 40))
    def test_match_count(self, count, ranked_teams, bracket_config):
        """Every team but the champion loses exactly once."""
        matches = generate_bracket(ranked_teams(count), bracket_config)
        played = [m for m in matches if m.round != "Third Place"]
        assert len(played) == count - 1

    def test_five_team_seeding(self, ranked_teams, bracket_config):
        """T4 vs T5 in the preliminary round, T1 meets its winner, T2 meets T3."""
        matches = generate_bracket(ranked_teams(5), bracket_config)
        assert _names(matches) == ["Preliminary Round", "Semifinal", "Semifinal", "Final", "Third Place"]

        preliminary = matches[0]
        assert (preliminary.team1.id, preliminary.team2.id) == ("T4", "T5")

        semi1, semi2 = matches[1], matches[2]
        assert semi1.team1.id == "T1"
        assert semi1.team2 == Placeholder(preliminary.id, 'winner')
        assert semi1.team2.label == "Winner M1"
        assert (semi2.team1.id, semi2.team2.id) == ("T2", "T3")

        assert preliminary.next_match_id == semi1.id
        assert preliminary.next_match_team_slot == 'team2'

    def test_no_third_place_without_semifinals(self, ranked_teams, bracket_config):
        """4 teams play two preliminary matches straight into the Final."""
        matches = generate_bracket(ranked_teams(4), bracket_config)
        assert "Third Place" not in _names(matches)

    def test_eight_team_bracket(self, ranked_teams, bracket_config):
        """8 teams: 4 preliminary matches, semifinals, final and third place."""
        matches = generate_bracket(ranked_teams(8), bracket_config)
        assert _names(matches) == ["Preliminary Round"] * 4 + ["Semifinal"] * 2 + ["Final", "Third Place"]
        pairs = [(m.team1.id, m.team2.id) for m in matches[:4]]
        assert pairs == [("T1", "T8"), ("T2", "T7"), ("T3", "T6"), ("T4", "T5")]

    def test_third_place_links(self, ranked_teams, bracket_config):
        """Semifinal losers feed the third-place match."""
        matches = generate_bracket(ranked_teams(12), bracket_config)
        semis = [m for m in matches if m.round == "Semifinal"]
        third = [m for m in matches if m.round == "Third Place"]
        assert len(semis) == 2 and len(third) == 1
        third = third[0]
        assert third.team1 == Placeholder(semis[0].id, 'loser')
        assert third.team2 == Placeholder(semis[1].id, 'loser')
        assert third.team1.label == f"Loser M{semis[0].match_number}"
        assert semis[0].next_match_loser_id == third.id
        assert semis[0].next_match_loser_team_slot == 'team1'
        assert semis[1].next_match_loser_team_slot == 'team2'

    def test_later_rounds_pair_consecutive_matches(self, ranked_teams, bracket_config):
        """Match 2k and 2k+1 of a round feed the same next match."""
        matches = generate_bracket(ranked_teams(16), bracket_config)
        semis = [m for m in matches if m.round == "Semifinal"]
        final = next(m for m in matches if m.round == "Final")
        assert final.team1 == Placeholder(semis[0].id, 'winner')
        assert final.team2 == Placeholder(semis[1].id, 'winner')

    def test_two_teams_play_the_final(self, ranked_teams, bracket_config):
        """With exactly 2 teams the only match is the Final."""
        matches = generate_bracket(ranked_teams(2), bracket_config)
        assert len(matches) == 1
        assert matches[0].round == "Final"
        assert matches[0].team1.id == "T1" and matches[0].team2.id == "T2"

    def test_three_teams(self, ranked_teams, bracket_config):
        """3 teams: T1 has a bye into the Final against the winner of T2/T3."""
        matches = generate_bracket(ranked_teams(3), bracket_config)
        assert _names(matches) == ["Preliminary Round", "Final"]
        assert matches[1].team1.id == "T1"
        assert isinstance(matches[1].team2, Placeholder)

    def test_empty_sets_and_status(self, ranked_teams, bracket_config):
        """Every match starts scheduled with sets_to_win empty sets."""
        for match in generate_bracket(ranked_teams(6), bracket_config):
            assert match.status == 'scheduled'
            assert len(match.sets) == 3
            assert all(not s.played for s in match.sets)
            assert match.sets_to_win == 3
            assert match.tie_break_enabled is True
            assert match.winner_id is None and match.loser_id is None

    def test_deterministic(self, ranked_teams, bracket_config):
        """Generating twice gives the same rounds and pairings."""
        def shape(matches):
            return [(m.round, repr(m.team1), repr(m.team2)) for m in matches]
        first = generate_bracket(ranked_teams(11), bracket_config)
        second = generate_bracket(ranked_teams(11), bracket_config)
        assert shape(first) == shape(second)

    def test_accepts_team_dicts(self, bracket_config):
        """Ranked teams may be plain dicts."""
        teams = [{'id': 'a', 'name': 'A'}, {'id': 'b', 'name': 'B'}, {'id': 'c', 'name': 'C'}]
        matches = generate_bracket(teams, bracket_config)
        assert matches[0].team1 == TeamRef('b', 'B')

    def test_id_prefix(self, ranked_teams, bracket_config):
        """Match ids carry the prefix."""
        matches = generate_bracket(ranked_teams(4), bracket_config, id_prefix='gold-')
        assert [m.id for m in matches] == ['gold-M1', 'gold-M2', 'gold-M3']

    def test_too_few_teams(self, ranked_teams, bracket_config):
        """A bracket needs at least 2 teams."""
        with pytest.raises(ConfigurationError):
            generate_bracket(ranked_teams(1), bracket_config)


class TestEliminationRanking:
    """Tests for the final bracket ranking."""

    def test_champion_runner_up_and_third(self, ranked_teams, bracket_config):
        """Placement bonuses put the top three in order."""
        matches = generate_bracket(ranked_teams(8), bracket_config)
        by_id = {m.id: m for m in matches}
        for match in matches[:4]:
            _complete(match, 1)
        semi1, semi2 = matches[4], matches[5]
        semi1.team1, semi1.team2 = by_id[semi1.team1.source_match_id].team1, by_id[semi1.team2.source_match_id].team1
        semi2.team1, semi2.team2 = by_id[semi2.team1.source_match_id].team1, by_id[semi2.team2.source_match_id].team1
        _complete(semi1, 1)
        _complete(semi2, 2)
        final, third = matches[6], matches[7]
        final.team1, final.team2 = TeamRef(semi1.winner_id, semi1.winner_id), TeamRef(semi2.winner_id, semi2.winner_id)
        third.team1, third.team2 = TeamRef(semi1.loser_id, semi1.loser_id), TeamRef(semi2.loser_id, semi2.loser_id)
        _complete(final, 2)
        _complete(third, 1)

        ranking = calculate_elimination_ranking(matches)
        champion = final.winner_id
        assert ranking[0]['team_id'] == champion
        assert ranking[0]['points'] == 3 * 3 + 1 + 15
        assert ranking[1]['team_id'] == final.loser_id
        assert ranking[1]['points'] == 3 * 2 + 1 + 9
        assert ranking[2]['team_id'] == third.winner_id
        assert ranking[2]['points'] == 3 * 2 + 1 + 4
        assert [e['rank'] for e in ranking] == list(range(1, 9))

    def test_unplayed_matches_ignored(self, ranked_teams, bracket_config):
        """Only completed matches count."""
        matches = generate_bracket(ranked_teams(4), bracket_config)
        assert calculate_elimination_ranking(matches) == []


class TestPointsForRank:
    """Tests for championship points by final rank."""

    def test_default_table(self):
        """Default step table."""
        assert points_for_rank(1) == 100
        assert points_for_rank(2) == 80
        assert points_for_rank(3) == 65
        assert points_for_rank(4) == 55
        assert points_for_rank(5) == 40
        assert points_for_rank(8) == 40
        assert points_for_rank(9) == 25
        assert points_for_rank(16) == 25
        assert points_for_rank(17) == 15
        assert points_for_rank(32) == 15
        assert points_for_rank(33) == 10
        assert points_for_rank(500) == 10

    def test_custom_table(self):
        """A tournament may supply its own steps and floor."""
        table = [[1, 50], [4, 20], [None, 1]]
        assert points_for_rank(1, table) == 50
        assert points_for_rank(3, table) == 20
        assert points_for_rank(9, table) == 1

    def test_invalid_rank(self):
        """Ranks start at 1."""
        with pytest.raises(ConfigurationError):
            points_for_rank(0)
