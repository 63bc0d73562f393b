"""
Participant registry: team applications to a match and their approval.

A team holds at most one active (pending or approved) application per match.
Rejected applications stay on record and do not block a new application.
All checks run inside the same store transaction as the write they guard,
so a decision on a participant is a compare-and-set on ``pending``.
"""
import logging
from typing import List, Optional

from thematch.errors import (
    DuplicateApplication,
    Forbidden,
    MatchLocked,
    MatchNotFound,
    NotPending,
    ParticipantNotFound,
    PreconditionNotMet,
    RegistrationClosed,
    TeamNotFound,
    ValidationFailed,
)
from thematch.models import (
    MatchStatus,
    Participant,
    ParticipantStatus,
    new_id,
    parse_timestamp,
    resolve_now,
    to_timestamp,
)

logger = logging.getLogger(__name__)


def count_approved_in(participants) -> int:
    return sum(1 for p in participants if p.status == ParticipantStatus.APPROVED)


def stats_for(participants) -> dict:
    return {
        'total': len(participants),
        'pending': sum(1 for p in participants if p.status == ParticipantStatus.PENDING),
        'approved': count_approved_in(participants),
        'rejected': sum(1 for p in participants if p.status == ParticipantStatus.REJECTED),
    }


def seed_order(participants) -> List[str]:
    """Team ids of approved participants in seeding order (approval order)."""
    approved = [p for p in participants if p.status == ParticipantStatus.APPROVED]
    approved.sort(key=lambda p: (p.seed if p.seed is not None else float('inf'), p.responded_at or '', p.id))
    return [p.team_id for p in approved]


def _clean_text(value, field):
    """Stripped text, or None when blank. Non-text values are rejected."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailed(f'{field.capitalize()} must be text.', field=field)
    return value.strip() or None


def _registration_open(match, now) -> bool:
    accepts_early = match.status == MatchStatus.DRAFT and match.settings.get('allow_pre_registration', False)
    if match.status != MatchStatus.REGISTRATION and not accepts_early:
        return False
    deadline = parse_timestamp(match.registration_deadline)
    if deadline is not None and now > deadline:
        return False
    return True


def apply(store, match_id: str, team_id: str, requester_id: str, notes: Optional[str] = None,
          now=None) -> Participant:
    """Record a pending application of ``team_id`` to ``match_id``."""
    notes = _clean_text(notes, 'notes')
    now = resolve_now(now)
    with store.transaction() as tx:
        match = tx.get_match(match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        team = tx.get_team(team_id)
        if team is None:
            raise TeamNotFound('Team not found.', team_id=team_id)
        if team.captain_id != requester_id:
            raise Forbidden('Only the team captain can apply to a match.')

        existing = [p for p in tx.participants_for_match(match_id) if p.team_id == team_id and p.is_active]
        if existing:
            raise DuplicateApplication(
                'This team has already applied to the match.',
                participant_id=existing[0].id,
                current_status=existing[0].status,
            )
        if not _registration_open(match, now):
            raise RegistrationClosed(
                'Registration is closed for this match.',
                match_status=match.status,
                registration_deadline=match.registration_deadline,
            )

        participant = Participant(
            id=new_id(),
            match_id=match_id,
            team_id=team_id,
            status=ParticipantStatus.PENDING,
            applied_at=to_timestamp(now),
            notes=notes,
        )
        tx.add_participant(participant)

    logger.info('Team %s applied to match %s (participant %s)', team_id, match_id, participant.id)
    return participant


def respond(store, participant_id: str, decision: str, responder_id: str, reason: Optional[str] = None,
            notes: Optional[str] = None, now=None) -> Participant:
    """Approve or reject a pending application. Only the match creator may decide."""
    if decision not in (ParticipantStatus.APPROVED, ParticipantStatus.REJECTED):
        raise ValidationFailed(
            'Decision must be approved or rejected.',
            valid_decisions=[ParticipantStatus.APPROVED, ParticipantStatus.REJECTED],
        )
    reason = _clean_text(reason, 'reason')
    notes = _clean_text(notes, 'notes')
    now = resolve_now(now)
    with store.transaction() as tx:
        participant = tx.get_participant(participant_id)
        if participant is None:
            raise ParticipantNotFound('Application not found.', participant_id=participant_id)
        match = tx.get_match(participant.match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=participant.match_id)
        if match.creator_id != responder_id:
            raise Forbidden('Only the match creator can approve or reject applications.')
        if participant.status != ParticipantStatus.PENDING:
            raise NotPending('This application has already been processed.', current_status=participant.status)
        if match.status not in (MatchStatus.DRAFT, MatchStatus.REGISTRATION):
            raise MatchLocked('Applications can no longer be decided for this match.', match_status=match.status)

        others = tx.participants_for_match(match.id)
        if decision == ParticipantStatus.APPROVED and match.max_participants:
            approved = count_approved_in(others)
            if approved >= match.max_participants:
                raise PreconditionNotMet(
                    'The match already has the maximum number of approved teams.',
                    reason='match_full',
                    approved_count=approved,
                    max_participants=match.max_participants,
                )

        participant.status = decision
        participant.responded_at = to_timestamp(now)
        participant.responded_by = responder_id
        if notes:
            participant.notes = notes
        if decision == ParticipantStatus.REJECTED:
            participant.rejection_reason = reason
        else:
            participant.seed = max((p.seed or 0 for p in others), default=0) + 1
        tx.update_participant(participant)

    logger.info('Participant %s of match %s %s by %s', participant.id, participant.match_id, decision, responder_id)
    return participant


def withdraw(store, participant_id: str, requester_id: str):
    """Remove an application. The team captain or the match creator may withdraw."""
    with store.transaction() as tx:
        participant = tx.get_participant(participant_id)
        if participant is None:
            raise ParticipantNotFound('Application not found.', participant_id=participant_id)
        match = tx.get_match(participant.match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=participant.match_id)
        team = tx.get_team(participant.team_id)
        captain_id = team.captain_id if team else None
        if requester_id not in (captain_id, match.creator_id):
            raise Forbidden('Only the team captain or the match creator can withdraw an application.')
        if match.status in (MatchStatus.IN_PROGRESS, MatchStatus.COMPLETED):
            raise MatchLocked('Applications cannot be withdrawn once the match has started.', match_status=match.status)
        if participant.status == ParticipantStatus.REJECTED:
            raise NotPending('A rejected application cannot be withdrawn.', current_status=participant.status)
        if participant.status == ParticipantStatus.APPROVED and match.status != MatchStatus.REGISTRATION:
            raise MatchLocked(
                'Approved teams can only withdraw while registration is open.',
                match_status=match.status,
            )
        tx.delete_participant(participant.id)

    logger.info('Participant %s withdrawn from match %s by %s', participant.id, participant.match_id, requester_id)


MATCH_STARTED_REASON = 'Match started before the application was decided.'


def close_pending(tx, participants, responder_id: str, now) -> int:
    """Reject undecided applications inside an open transaction; returns how many."""
    closed = 0
    for participant in participants:
        if participant.status != ParticipantStatus.PENDING:
            continue
        participant.status = ParticipantStatus.REJECTED
        participant.responded_at = to_timestamp(now)
        participant.responded_by = responder_id
        participant.rejection_reason = MATCH_STARTED_REASON
        tx.update_participant(participant)
        closed += 1
    return closed


def count_approved(store, match_id: str) -> int:
    with store.transaction() as tx:
        return count_approved_in(tx.participants_for_match(match_id))


def participant_stats(store, match_id: str) -> dict:
    with store.transaction() as tx:
        return stats_for(tx.participants_for_match(match_id))


def list_participants(store, match_id: str) -> List[Participant]:
    """Applications of a match, newest first."""
    with store.transaction() as tx:
        if tx.get_match(match_id) is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        participants = tx.participants_for_match(match_id)
    participants.sort(key=lambda p: (p.applied_at or '', p.id), reverse=True)
    return participants


def find_participant(store, match_id: str, team_id: str) -> Participant:
    """The active application of a team, or its most recent one."""
    with store.transaction() as tx:
        if tx.get_match(match_id) is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        records = [p for p in tx.participants_for_match(match_id) if p.team_id == team_id]
    if not records:
        raise ParticipantNotFound('Application not found.', match_id=match_id, team_id=team_id)
    for record in records:
        if record.is_active:
            return record
    records.sort(key=lambda p: (p.applied_at or '', p.id))
    return records[-1]
