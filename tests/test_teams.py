"""
Unit tests for team records.
"""
import pytest

from thematch import teams
from thematch.errors import TeamNotFound, ValidationFailed


class TestTeams:
    """Tests for creating and fetching teams."""

    def test_create_and_get(self, store):
        team = teams.create_team(store, '  Night Owls ', 'captain-1', description='Evening league')
        assert team.name == 'Night Owls'
        assert teams.get_team(store, team.id).captain_id == 'captain-1'

    @pytest.mark.parametrize('name', ['', 'A', 'x' * 51, 42, ['Owls']])
    def test_name_length(self, store, name):
        with pytest.raises(ValidationFailed):
            teams.create_team(store, name, 'captain-1')

    def test_missing_team(self, store):
        with pytest.raises(TeamNotFound):
            teams.get_team(store, 'missing')

    def test_description_must_be_text(self, store):
        with pytest.raises(ValidationFailed) as exc:
            teams.create_team(store, 'Night Owls', 'captain-1', description={'text': 'x'})
        assert exc.value.details['field'] == 'description'
