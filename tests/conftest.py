"""
Shared pytest fixtures for match core tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
import yaml
from datetime import datetime, timedelta, timezone

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from thematch import registry
from thematch.models import Match, MatchFormat, MatchStatus, Team
from thematch.storage import YamlStore

CREATOR = 'user-creator'
T0 = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

# Bearer tokens for the API client, stored in tokens.yaml
TOKENS = {
    'creator-token': CREATOR,
    'captain-a-token': 'captain-a',
    'captain-b-token': 'captain-b',
    'captain-c-token': 'captain-c',
    'captain-d-token': 'captain-d',
    'stranger-token': 'stranger',
}


def at(minutes):
    """A fixed point in time ``minutes`` after T0."""
    return T0 + timedelta(minutes=minutes)


@pytest.fixture
def store(tmp_path):
    """Empty store in a temporary data directory."""
    return YamlStore(str(tmp_path / 'data'))


def add_team(store, name, captain_id=None):
    team = Team(id=f'team-{name.lower()}', name=name, captain_id=captain_id or f'captain-{name.lower()}')
    with store.transaction() as tx:
        tx.add_team(team)
    return team


def add_match(store, match_format=MatchFormat.SINGLE_ELIMINATION, status=MatchStatus.REGISTRATION, **kwargs):
    match = Match(
        id=kwargs.pop('id', f'match-{match_format}'),
        title=kwargs.pop('title', 'Spring Cup'),
        format=match_format,
        creator_id=kwargs.pop('creator_id', CREATOR),
        status=status,
        created_at=T0.isoformat(),
        **kwargs
    )
    with store.transaction() as tx:
        tx.add_match(match)
    return match


def approve_teams(store, match, names, start_minute=0):
    """Apply and approve teams in order; returns their team ids in seed order."""
    team_ids = []
    minute = start_minute
    for name in names:
        team = add_team(store, name)
        participant = registry.apply(store, match.id, team.id, team.captain_id, now=at(minute))
        registry.respond(store, participant.id, 'approved', match.creator_id, now=at(minute + 1))
        minute += 2
        team_ids.append(team.id)
    return team_ids


@pytest.fixture
def registration_match(store):
    """Single elimination match open for registration."""
    return add_match(store)


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at a temporary data directory with development tokens."""
    import app as app_module

    data_dir = tmp_path / "data"
    data_dir.mkdir()
    tokens_file = data_dir / "tokens.yaml"
    tokens_file.write_text(yaml.dump({'tokens': TOKENS}, default_flow_style=False))

    monkeypatch.setattr(app_module, 'DATA_DIR', str(data_dir))
    monkeypatch.setattr(app_module, 'AUTH_PROVIDER_URL', '')
    return str(data_dir)


@pytest.fixture
def client(temp_data_dir):
    """Create a Flask test client bound to the temporary data directory."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


def auth(token):
    return {'Authorization': f'Bearer {token}'}
