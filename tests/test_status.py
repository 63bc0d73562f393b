"""
Unit tests for the match status state machine.
"""
import threading

import pytest

from conftest import CREATOR, add_match, add_team, approve_teams, at
from thematch import registry, status
from thematch.errors import (
    Forbidden,
    InvalidTransition,
    MatchNotFound,
    NoOpTransition,
    PreconditionNotMet,
    ValidationFailed,
)
from thematch.models import MatchFormat, MatchStatus


def games_of(store, match_id):
    with store.transaction() as tx:
        return tx.games_for_match(match_id)


class TestTransitionTable:
    """Tests for allowed and refused transitions."""

    @pytest.mark.parametrize('current,allowed', [
        ('draft', ['registration', 'cancelled']),
        ('registration', ['in_progress', 'cancelled']),
        ('in_progress', ['completed', 'cancelled']),
        ('completed', []),
        ('cancelled', []),
    ])
    def test_allowed_transitions(self, current, allowed):
        assert status.allowed_transitions(current) == allowed

    def test_draft_to_registration(self, store):
        match = add_match(store, status=MatchStatus.DRAFT)
        updated, previous = status.transition(store, match.id, 'registration', CREATOR, now=at(0))
        assert previous == 'draft'
        assert updated.status == 'registration'

    def test_skipping_a_step_is_invalid(self, store):
        match = add_match(store, status=MatchStatus.DRAFT)
        with pytest.raises(InvalidTransition) as exc:
            status.transition(store, match.id, 'in_progress', CREATOR, now=at(0))
        assert exc.value.details['current_status'] == 'draft'
        assert exc.value.details['allowed_transitions'] == ['registration', 'cancelled']

    def test_terminal_status_cannot_move(self, store):
        match = add_match(store, status=MatchStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            status.transition(store, match.id, 'cancelled', CREATOR, now=at(0))

    def test_same_status_is_noop(self, store, registration_match):
        with pytest.raises(NoOpTransition):
            status.transition(store, registration_match.id, 'registration', CREATOR, now=at(0))

    def test_unknown_status(self, store, registration_match):
        with pytest.raises(ValidationFailed):
            status.transition(store, registration_match.id, 'paused', CREATOR, now=at(0))

    def test_only_creator(self, store, registration_match):
        with pytest.raises(Forbidden):
            status.transition(store, registration_match.id, 'cancelled', 'someone', now=at(0))

    def test_unknown_match(self, store):
        with pytest.raises(MatchNotFound):
            status.transition(store, 'missing', 'cancelled', CREATOR, now=at(0))

    def test_history_is_recorded(self, store):
        match = add_match(store, status=MatchStatus.DRAFT)
        status.transition(store, match.id, 'registration', CREATOR, reason='open', now=at(0))
        with store.transaction() as tx:
            history = tx.status_history(match.id)
        assert len(history) == 1
        assert history[0]['from'] == 'draft'
        assert history[0]['to'] == 'registration'
        assert history[0]['changed_by'] == CREATOR
        assert history[0]['reason'] == 'open'


class TestStart:
    """Tests for starting a match."""

    def test_one_approved_team_is_not_enough(self, store, registration_match):
        approve_teams(store, registration_match, ['Alpha'])
        with pytest.raises(PreconditionNotMet) as exc:
            status.transition(store, registration_match.id, 'in_progress', CREATOR, now=at(10))
        assert exc.value.details['reason'] == 'insufficient_participants'
        assert exc.value.details['approved_count'] == 1
        assert games_of(store, registration_match.id) == []

    def test_two_approved_teams_start(self, store, registration_match):
        approve_teams(store, registration_match, ['Alpha', 'Bravo'])
        match, _ = status.transition(store, registration_match.id, 'in_progress', CREATOR, now=at(10))
        assert match.status == 'in_progress'
        assert match.current_round == 1
        assert match.start_date == at(10).isoformat()
        games = games_of(store, match.id)
        assert len(games) == 1
        assert (games[0].team1_id, games[0].team2_id) == ('team-alpha', 'team-bravo')

    def test_start_closes_undecided_applications(self, store, registration_match):
        approve_teams(store, registration_match, ['Alpha', 'Bravo'])
        late = add_team(store, 'Charlie')
        registry.apply(store, registration_match.id, late.id, late.captain_id, now=at(8))
        status.transition(store, registration_match.id, 'in_progress', CREATOR, now=at(10))

        participant = registry.find_participant(store, registration_match.id, late.id)
        assert participant.status == 'rejected'
        assert participant.rejection_reason == registry.MATCH_STARTED_REASON
        assert participant.responded_at == at(10).isoformat()
        assert registry.participant_stats(store, registration_match.id)['pending'] == 0
        teams_in_games = {t for g in games_of(store, registration_match.id) for t in (g.team1_id, g.team2_id)}
        assert late.id not in teams_in_games

    def test_concurrent_starts_generate_once(self, store, registration_match):
        approve_teams(store, registration_match, ['Alpha', 'Bravo', 'Charlie', 'Delta'])
        outcomes = []

        def start():
            try:
                status.transition(store, registration_match.id, 'in_progress', CREATOR, now=at(20))
                outcomes.append('started')
            except NoOpTransition:
                outcomes.append('noop')

        threads = [threading.Thread(target=start) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count('started') == 1
        assert outcomes.count('noop') == 3
        assert len(games_of(store, registration_match.id)) == 3

    def test_round_robin_start(self, store):
        match = add_match(store, match_format=MatchFormat.ROUND_ROBIN)
        approve_teams(store, match, ['Alpha', 'Bravo', 'Charlie'])
        status.transition(store, match.id, 'in_progress', CREATOR, now=at(10))
        assert len(games_of(store, match.id)) == 3


class TestCompleteAndCancel:
    """Tests for finishing and cancelling a match."""

    def test_complete_requires_final_winner(self, store, registration_match):
        approve_teams(store, registration_match, ['Alpha', 'Bravo'])
        status.transition(store, registration_match.id, 'in_progress', CREATOR, now=at(10))
        with pytest.raises(PreconditionNotMet) as exc:
            status.transition(store, registration_match.id, 'completed', CREATOR, now=at(20))
        assert exc.value.details['reason'] == 'games_unfinished'
        assert len(exc.value.details['pending_games']) == 1

    def test_complete_with_override(self, store, registration_match):
        approve_teams(store, registration_match, ['Alpha', 'Bravo'])
        status.transition(store, registration_match.id, 'in_progress', CREATOR, now=at(10))
        match, previous = status.transition(store, registration_match.id, 'completed', CREATOR,
                                            override=True, now=at(20))
        assert previous == 'in_progress'
        assert match.status == 'completed'
        assert match.end_date == at(20).isoformat()

    def test_cancel_records_reason(self, store, registration_match):
        match, _ = status.transition(store, registration_match.id, 'cancelled', CREATOR,
                                     reason='Venue unavailable', now=at(5))
        assert match.status == 'cancelled'
        assert match.settings['cancellation_reason'] == 'Venue unavailable'
        assert match.settings['cancelled_by'] == CREATOR
        assert match.settings['cancelled_at'] == at(5).isoformat()


class TestStatusSummary:
    """Tests for the status overview."""

    def test_summary_reports_start_requirements(self, store, registration_match):
        approve_teams(store, registration_match, ['Alpha'])
        summary = status.status_summary(store, registration_match.id)
        assert summary['current_status'] == 'registration'
        assert summary['allowed_transitions'] == ['in_progress', 'cancelled']
        assert summary['requirements']['to_start'] == {
            'min_participants': 2,
            'current_approved': 1,
            'can_start': False,
        }
        assert summary['participant_stats']['approved'] == 1
