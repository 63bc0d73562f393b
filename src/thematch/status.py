"""
Match lifecycle state machine.

    draft -> registration -> in_progress -> completed

Any non-terminal status may also move to ``cancelled``. ``completed`` and
``cancelled`` are terminal. Only the match creator may move a match, and
every accepted transition is appended to the status history. Starting a
match generates its games exactly once.
"""
import logging
from typing import List

from thematch import registry
from thematch.bracket import generate_games, unfinished_terminal_games
from thematch.errors import (
    Forbidden,
    InvalidTransition,
    MatchNotFound,
    NoOpTransition,
    PreconditionNotMet,
    ValidationFailed,
)
from thematch.models import MatchStatus, new_id, resolve_now, to_timestamp

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2

STATUS_TRANSITIONS = {
    MatchStatus.DRAFT: [MatchStatus.REGISTRATION, MatchStatus.CANCELLED],
    MatchStatus.REGISTRATION: [MatchStatus.IN_PROGRESS, MatchStatus.CANCELLED],
    MatchStatus.IN_PROGRESS: [MatchStatus.COMPLETED, MatchStatus.CANCELLED],
    MatchStatus.COMPLETED: [],
    MatchStatus.CANCELLED: [],
}


def allowed_transitions(status: str) -> List[str]:
    return list(STATUS_TRANSITIONS.get(status, []))


def _start(tx, match, requester_id, now):
    participants = tx.participants_for_match(match.id)
    approved = registry.count_approved_in(participants)
    if approved < MIN_PARTICIPANTS:
        raise PreconditionNotMet(
            f'At least {MIN_PARTICIPANTS} approved teams are required to start the match.',
            reason='insufficient_participants',
            approved_count=approved,
            min_participants=MIN_PARTICIPANTS,
        )
    if not match.start_date:
        match.start_date = to_timestamp(now)
    match.advance_round(1)

    if not tx.has_games(match.id):
        games = generate_games(match, registry.seed_order(participants), now=now)
        tx.insert_games_if_absent(match.id, games)
        logger.info('Generated %d games for match %s (%s, %d teams)',
                    len(games), match.id, match.format, approved)

    closed = registry.close_pending(tx, participants, requester_id, now)
    if closed:
        logger.info('Closed %d undecided application(s) of match %s at start', closed, match.id)


def _complete(tx, match, now, override):
    games = tx.games_for_match(match.id)
    pending = unfinished_terminal_games(match, games)
    if (pending or not games) and not override:
        raise PreconditionNotMet(
            'All deciding games need a recorded winner before the match can be completed.',
            reason='games_unfinished',
            pending_games=[g.id for g in pending],
        )
    if override and pending:
        logger.warning('Match %s completed by override with %d unfinished games', match.id, len(pending))
    if not match.end_date:
        match.end_date = to_timestamp(now)


def _cancel(match, requester_id, reason, now):
    match.settings['cancellation_reason'] = reason
    match.settings['cancelled_at'] = to_timestamp(now)
    match.settings['cancelled_by'] = requester_id


def transition(store, match_id: str, target_status: str, requester_id: str, reason=None,
               override: bool = False, now=None):
    """
    Move a match to ``target_status``.

    Returns ``(match, previous_status)``. The status check and the write
    happen in one store transaction, so concurrent requests for the same
    transition apply once and the others see ``NoOpTransition``.
    """
    if target_status not in MatchStatus.ALL:
        raise ValidationFailed('Invalid status value.', valid_statuses=list(MatchStatus.ALL))
    if reason is not None and not isinstance(reason, str):
        raise ValidationFailed('Reason must be text.', field='reason')
    now = resolve_now(now)

    with store.transaction() as tx:
        match = tx.get_match(match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        if match.creator_id != requester_id:
            raise Forbidden('Only the match creator can change its status.')

        current = match.status
        if current == target_status:
            raise NoOpTransition(f'The match is already {target_status}.', current_status=current)
        allowed = allowed_transitions(current)
        if target_status not in allowed:
            raise InvalidTransition(
                f'Cannot change status from {current} to {target_status}.',
                current_status=current,
                allowed_transitions=allowed,
            )

        if target_status == MatchStatus.IN_PROGRESS:
            _start(tx, match, requester_id, now)
        elif target_status == MatchStatus.COMPLETED:
            _complete(tx, match, now, override)
        elif target_status == MatchStatus.CANCELLED:
            _cancel(match, requester_id, reason, now)

        match.status = target_status
        match.updated_at = to_timestamp(now)
        tx.update_match(match)
        tx.append_status_change({
            'id': new_id(),
            'match_id': match.id,
            'from': current,
            'to': target_status,
            'changed_by': requester_id,
            'reason': reason,
            'override': bool(override),
            'created_at': to_timestamp(now),
        })

    logger.info('Match %s status %s -> %s by %s', match.id, current, target_status, requester_id)
    return match, current


def status_summary(store, match_id: str) -> dict:
    """Current status, next statuses and what each next status still needs."""
    with store.transaction() as tx:
        match = tx.get_match(match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        participants = tx.participants_for_match(match_id)
        games = tx.games_for_match(match_id)
        history = tx.status_history(match_id)

    allowed = allowed_transitions(match.status)
    stats = registry.stats_for(participants)

    requirements = {}
    if MatchStatus.IN_PROGRESS in allowed:
        requirements['to_start'] = {
            'min_participants': MIN_PARTICIPANTS,
            'current_approved': stats['approved'],
            'can_start': stats['approved'] >= MIN_PARTICIPANTS,
        }
    if MatchStatus.COMPLETED in allowed:
        pending = unfinished_terminal_games(match, games)
        requirements['to_complete'] = {
            'pending_games': [g.id for g in pending],
            'can_complete': bool(games) and not pending,
        }

    return {
        'match_id': match.id,
        'title': match.title,
        'current_status': match.status,
        'allowed_transitions': allowed,
        'participant_stats': stats,
        'requirements': requirements,
        'timeline': {
            'created': match.created_at,
            'started': match.start_date,
            'ended': match.end_date,
        },
        'history': history,
    }
