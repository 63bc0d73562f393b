"""Team records referenced by participants and games."""
import logging

from thematch.errors import TeamNotFound, ValidationFailed
from thematch.models import Team, new_id, utcnow, to_timestamp

logger = logging.getLogger(__name__)


def create_team(store, name: str, captain_id: str, description=None, logo_url=None) -> Team:
    """Create a team captained by ``captain_id``."""
    if name is not None and not isinstance(name, str):
        raise ValidationFailed('Team name must be text.', field='name')
    for field, value in (('description', description), ('logo_url', logo_url)):
        if value is not None and not isinstance(value, str):
            raise ValidationFailed(f'Team {field} must be text.', field=field)
    name = (name or '').strip()
    if len(name) < 2 or len(name) > 50:
        raise ValidationFailed('Team name must be between 2 and 50 characters.', field='name')
    if description and len(description) > 500:
        raise ValidationFailed('Team description cannot exceed 500 characters.', field='description')

    team = Team(
        id=new_id(),
        name=name,
        captain_id=captain_id,
        description=description.strip() if description else None,
        logo_url=logo_url,
        created_at=to_timestamp(utcnow()),
    )
    with store.transaction() as tx:
        tx.add_team(team)
    logger.info('Team %s (%s) created by %s', team.id, team.name, captain_id)
    return team


def get_team(store, team_id: str) -> Team:
    with store.transaction() as tx:
        team = tx.get_team(team_id)
    if team is None:
        raise TeamNotFound('Team not found.', team_id=team_id)
    return team
