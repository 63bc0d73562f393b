"""
Match creation, lookup, listing and deletion.
"""
import logging
import math
from datetime import datetime
from typing import List, Optional

from thematch.errors import Forbidden, MatchLocked, MatchNotFound, ValidationFailed
from thematch.models import (
    Match,
    MatchFormat,
    MatchStatus,
    ParticipantStatus,
    new_id,
    parse_timestamp,
    resolve_now,
    to_timestamp,
)

logger = logging.getLogger(__name__)

MAX_PARTICIPANTS_LIMIT = 1000
INITIAL_STATUSES = (MatchStatus.DRAFT, MatchStatus.REGISTRATION)


def _parse_date(data, field, errors, label):
    value = data.get(field)
    if value in (None, ''):
        return None
    if not isinstance(value, (str, datetime)):
        errors.append(f'Invalid {label}.')
        return None
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        errors.append(f'Invalid {label}.')
        return None


def validate_match_data(data: dict, now=None) -> List[str]:
    """Return a list of validation error messages (empty when valid)."""
    now = resolve_now(now)
    errors = []

    title = data.get('title')
    if not title or not isinstance(title, str):
        errors.append('Title is required.')
    elif len(title.strip()) < 2:
        errors.append('Title must be at least 2 characters.')
    elif len(title) > 100:
        errors.append('Title cannot exceed 100 characters.')

    description = data.get('description')
    if description is not None and not isinstance(description, str):
        errors.append('Description must be text.')
    elif description and len(description) > 500:
        errors.append('Description cannot exceed 500 characters.')

    match_format = data.get('format') or data.get('type')
    if match_format not in MatchFormat.ALL:
        errors.append(f'Format must be one of: {", ".join(MatchFormat.ALL)}.')

    status = data.get('status')
    if status is not None and status not in INITIAL_STATUSES:
        errors.append('A new match must start as draft or registration.')

    max_participants = data.get('max_participants')
    if max_participants is not None:
        if isinstance(max_participants, bool) or not isinstance(max_participants, int) or max_participants < 2:
            errors.append('Maximum participants must be at least 2.')
        elif max_participants > MAX_PARTICIPANTS_LIMIT:
            errors.append(f'Maximum participants cannot exceed {MAX_PARTICIPANTS_LIMIT}.')

    deadline = _parse_date(data, 'registration_deadline', errors, 'registration deadline')
    start = _parse_date(data, 'start_date', errors, 'start date')
    end = _parse_date(data, 'end_date', errors, 'end date')

    if deadline and deadline < now:
        errors.append('Registration deadline must be in the future.')
    if start and start < now:
        errors.append('Start date must be in the future.')
    if deadline and start and deadline > start:
        errors.append('Registration deadline must be before the start date.')
    if start and end and start > end:
        errors.append('End date must be after the start date.')

    venue = data.get('venue')
    if venue is not None and not isinstance(venue, str):
        errors.append('Venue must be text.')
    elif venue and len(venue) > 200:
        errors.append('Venue cannot exceed 200 characters.')

    for field in ('rules', 'settings'):
        if data.get(field) is not None and not isinstance(data.get(field), dict):
            errors.append(f'{field.capitalize()} must be an object.')

    return errors


def create_match(store, creator_id: str, data: dict, now=None) -> Match:
    """Create a match owned by ``creator_id`` from request data."""
    now = resolve_now(now)
    errors = validate_match_data(data, now)
    if errors:
        raise ValidationFailed('Invalid match data.', details=errors)

    description = data.get('description')
    venue = data.get('venue')
    match = Match(
        id=new_id(),
        title=data['title'].strip(),
        description=description.strip() if description else None,
        format=data.get('format') or data.get('type'),
        status=data.get('status') or MatchStatus.DRAFT,
        creator_id=creator_id,
        max_participants=data.get('max_participants'),
        registration_deadline=to_timestamp(data.get('registration_deadline')),
        start_date=to_timestamp(data.get('start_date')),
        end_date=to_timestamp(data.get('end_date')),
        venue=venue.strip() if venue else None,
        rules=data.get('rules') or {},
        settings=data.get('settings') or {},
        created_at=to_timestamp(now),
        updated_at=to_timestamp(now),
    )
    with store.transaction() as tx:
        tx.add_match(match)
    logger.info('Match %s (%s) created by %s', match.id, match.format, creator_id)
    return match


def get_match(store, match_id: str) -> Match:
    with store.transaction() as tx:
        match = tx.get_match(match_id)
    if match is None:
        raise MatchNotFound('Match not found.', match_id=match_id)
    return match


def list_matches(store, status: Optional[str] = None, match_format: Optional[str] = None,
                 creator_id: Optional[str] = None, search: Optional[str] = None,
                 page: int = 1, limit: int = 10):
    """Filtered matches, newest first, with pagination info."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    with store.transaction() as tx:
        matches = tx.list_matches()

    if status and status != 'all':
        matches = [m for m in matches if m.status == status]
    if match_format and match_format != 'all':
        matches = [m for m in matches if m.format == match_format]
    if creator_id:
        matches = [m for m in matches if m.creator_id == creator_id]
    if search:
        needle = search.lower()
        matches = [m for m in matches
                   if needle in m.title.lower() or needle in (m.description or '').lower()]

    matches.sort(key=lambda m: (m.created_at or '', m.id), reverse=True)
    total = len(matches)
    total_pages = math.ceil(total / limit)
    start = (page - 1) * limit
    pagination = {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': total_pages,
        'has_next': page < total_pages,
        'has_prev': page > 1,
    }
    return matches[start:start + limit], pagination


def delete_match(store, match_id: str, requester_id: str):
    """
    Delete a match and its pending applications.

    A match that is running, finished, has approved teams or any scored game
    stays on record.
    """
    with store.transaction() as tx:
        match = tx.get_match(match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        if match.creator_id != requester_id:
            raise Forbidden('Only the match creator can delete the match.')
        if match.status in (MatchStatus.IN_PROGRESS, MatchStatus.COMPLETED):
            raise MatchLocked('A started or completed match cannot be deleted.', match_status=match.status)
        participants = tx.participants_for_match(match_id)
        if any(p.status == ParticipantStatus.APPROVED for p in participants):
            raise MatchLocked('A match with approved teams cannot be deleted.', match_status=match.status)
        if not tx.delete_unscored_games(match_id):
            raise MatchLocked('A match with recorded scores cannot be deleted.', match_status=match.status)
        for participant in participants:
            tx.delete_participant(participant.id)
        tx.delete_match(match_id)
    logger.info('Match %s deleted by %s', match_id, requester_id)
