"""
Unit tests for bracket and round robin generation.
"""
import pytest

from conftest import at
from thematch.bracket import (
    bracket_view,
    build_round_robin,
    build_single_elimination,
    feeder_number,
    games_per_round,
    get_round_name,
    next_slot,
)
from thematch.models import BracketSlot, Match, MatchFormat


def teams(n):
    return [f't{i}' for i in range(1, n + 1)]


def keyed(games):
    return {(g.round, g.game_number): g for g in games}


class TestBracketHelpers:
    """Tests for slot arithmetic and round naming."""

    def test_round_names(self):
        assert get_round_name(2) == "Final"
        assert get_round_name(4) == "Semifinal"
        assert get_round_name(8) == "Quarterfinal"
        assert get_round_name(16) == "Round of 16"

    @pytest.mark.parametrize('num_teams,expected', [
        (2, [1]),
        (3, [2, 1]),
        (4, [2, 1]),
        (5, [3, 2, 1]),
        (8, [4, 2, 1]),
        (1, []),
    ])
    def test_games_per_round(self, num_teams, expected):
        assert games_per_round(num_teams) == expected

    def test_next_slot_pairs_adjacent_games(self):
        assert next_slot(1, 1) == (2, 1, 'team1_id')
        assert next_slot(1, 2) == (2, 1, 'team2_id')
        assert next_slot(1, 3) == (2, 2, 'team1_id')
        assert next_slot(2, 4) == (3, 2, 'team2_id')

    def test_feeder_number_inverts_next_slot(self):
        for game_number in range(1, 9):
            next_round, next_number, slot = next_slot(1, game_number)
            assert feeder_number(next_number, slot) == game_number


class TestSingleElimination:
    """Tests for single elimination generation."""

    def test_four_teams(self):
        games = keyed(build_single_elimination('m', teams(4), now=at(0)))
        assert len(games) == 3
        assert (games[(1, 1)].team1_id, games[(1, 1)].team2_id) == ('t1', 't2')
        assert (games[(1, 2)].team1_id, games[(1, 2)].team2_id) == ('t3', 't4')
        assert games[(2, 1)].team1_id is None
        assert games[(2, 1)].team2_id is None

    def test_generation_is_deterministic(self):
        first = build_single_elimination('m', teams(6), now=at(0))
        second = build_single_elimination('m', teams(6), now=at(0))
        layout = [(g.round, g.game_number, g.team1_id, g.team2_id, g.is_bye) for g in first]
        assert layout == [(g.round, g.game_number, g.team1_id, g.team2_id, g.is_bye) for g in second]

    def test_three_teams_bye_advances(self):
        games = keyed(build_single_elimination('m', teams(3), now=at(0)))
        bye = games[(1, 2)]
        assert bye.is_bye
        assert bye.status == 'completed'
        assert bye.winner_id == 't3'
        assert games[(2, 1)].team2_id == 't3'
        assert games[(2, 1)].team1_id is None

    def test_five_teams_bye_passes_through_structural_gap(self):
        games = keyed(build_single_elimination('m', teams(5), now=at(0)))
        assert games[(1, 3)].is_bye
        # Round 2 game 2 has no feeder for team2, so t5 moves straight on
        assert games[(2, 2)].is_bye
        assert games[(2, 2)].winner_id == 't5'
        assert games[(3, 1)].team2_id == 't5'


class TestRoundRobin:
    """Tests for round robin generation."""

    def test_every_pair_meets_once(self):
        games = build_round_robin('m', teams(5))
        pairs = {frozenset((g.team1_id, g.team2_id)) for g in games}
        assert len(games) == 10
        assert len(pairs) == 10

    def test_even_rounds(self):
        games = build_round_robin('m', teams(4))
        rounds = {}
        for game in games:
            rounds.setdefault(game.round, []).append(game)
        assert sorted(rounds) == [1, 2, 3]
        for round_games in rounds.values():
            playing = [t for g in round_games for t in (g.team1_id, g.team2_id)]
            assert len(playing) == len(set(playing)) == 4


class TestBracketView:
    """Tests for the tagged bracket view."""

    def test_slots_are_tagged(self):
        match = Match(id='m', title='Cup', format=MatchFormat.SINGLE_ELIMINATION, creator_id='c')
        games = build_single_elimination('m', teams(3), now=at(0))
        view = bracket_view(match, games)
        assert view['total_rounds'] == 2
        assert [r['name'] for r in view['rounds']] == ['Semifinal', 'Final']

        final = view['rounds'][1]['games'][0]
        semifinal = view['rounds'][0]['games'][0]
        assert final['slots']['team1'] == BracketSlot.awaiting(semifinal['id']).to_dict()
        assert final['slots']['team2'] == BracketSlot.filled('t3').to_dict()
        assert final['is_playable'] is False
        assert view['champion'] is None

    def test_round_names_follow_bracket_levels(self):
        match = Match(id='m', title='Cup', format=MatchFormat.SINGLE_ELIMINATION, creator_id='c')
        view = bracket_view(match, build_single_elimination('m', teams(6), now=at(0)))
        assert [len(r['games']) for r in view['rounds']] == [3, 2, 1]
        assert [r['name'] for r in view['rounds']] == ['Quarterfinal', 'Semifinal', 'Final']
