"""
Score recording and winner progression.

The score write is the primary fact and commits on its own. Advancing the
winner into the next round runs afterwards in a separate transaction; a
failure there is logged and left for ``reconcile`` to repair. Placement is a
pure function of the source game's position and writes a single team slot,
so repeating it is harmless.
"""
import logging
from typing import List

from thematch.bracket import complete_as_bye, feeder_number, next_slot, other_slot
from thematch.errors import (
    Forbidden,
    GameLocked,
    GameNotFound,
    GameNotReady,
    MatchLocked,
    MatchNotFound,
    ValidationFailed,
)
from thematch.models import GameStatus, MatchStatus, resolve_now, to_timestamp

logger = logging.getLogger(__name__)


def determine_winner(team1_id, team2_id, team1_score: int, team2_score: int):
    """Winner id by higher score, or None for a tie."""
    if team1_score > team2_score:
        return team1_id
    elif team2_score > team1_score:
        return team2_id
    return None


def _validate_score(value, field):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailed('Scores must be integers.', field=field)
    if value < 0:
        raise ValidationFailed('Scores cannot be negative.', field=field)


def _downstream_locked(tx, game) -> bool:
    """True when a later game already depending on ``game`` has been played."""
    current = game
    while True:
        next_round, next_number, _ = next_slot(current.round, current.game_number)
        target = tx.find_game(current.match_id, next_round, next_number)
        if target is None:
            return False
        if target.is_completed and not target.is_bye:
            return True
        if not target.is_completed:
            return False
        current = target


def record_result(store, match_id: str, game_id: str, team1_score, team2_score, requester_id: str,
                  now=None):
    """
    Record the final score of a game and advance its winner.

    Only the match creator may record results, and only while the match is
    in progress. Elimination formats do not accept ties.
    """
    _validate_score(team1_score, 'team1_score')
    _validate_score(team2_score, 'team2_score')
    now = resolve_now(now)

    with store.transaction() as tx:
        match = tx.get_match(match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        if match.creator_id != requester_id:
            raise Forbidden('Only the match creator can record results.')
        game = tx.get_game(game_id)
        if game is None or game.match_id != match_id:
            raise GameNotFound('Game not found in this match.', match_id=match_id, game_id=game_id)
        if match.status != MatchStatus.IN_PROGRESS:
            raise MatchLocked('Results can only be recorded while the match is in progress.',
                              match_status=match.status)
        if game.is_bye:
            raise GameLocked('A bye has no score to record.', game_id=game.id)
        if not (game.team1_id and game.team2_id):
            raise GameNotReady('Both teams must be known before recording a result.',
                               game_id=game.id, team1_id=game.team1_id, team2_id=game.team2_id)
        if match.is_elimination and team1_score == team2_score:
            raise ValidationFailed('Elimination games cannot end in a tie.', reason='tie_not_allowed')
        if match.is_elimination and game.is_completed and _downstream_locked(tx, game):
            raise GameLocked('A later game depending on this result has already been played.',
                             game_id=game.id)

        game.team1_score = team1_score
        game.team2_score = team2_score
        game.winner_id = determine_winner(game.team1_id, game.team2_id, team1_score, team2_score)
        game.status = GameStatus.COMPLETED
        game.started_at = game.started_at or to_timestamp(now)
        game.ended_at = to_timestamp(now)
        tx.update_game(game)

        match.record_result(game)
        match.advance_round(game.round)
        match.updated_at = to_timestamp(now)
        tx.update_match(match)

    logger.info('Game %s of match %s completed %s-%s (winner %s)',
                game.id, match_id, team1_score, team2_score, game.winner_id)

    if match.is_elimination and game.winner_id:
        try:
            advance_winner(store, match_id, game.id, now=now)
        except Exception:
            logger.exception('Progression failed for game %s of match %s; run reconcile to retry',
                             game.id, match_id)
    return game


def _place_winner(tx, game, now):
    """Write ``game``'s winner into the next round; follow structural byes."""
    next_round, next_number, slot = next_slot(game.round, game.game_number)
    target = tx.find_game(game.match_id, next_round, next_number)
    if target is None:
        return None
    target = tx.set_game_slot(target.id, slot, game.winner_id)

    opposite = other_slot(slot)
    opposite_feeder = tx.find_game(game.match_id, target.round - 1, feeder_number(target.game_number, opposite))
    if opposite_feeder is None and not getattr(target, opposite):
        if target.is_bye and target.winner_id != game.winner_id:
            target.winner_id = game.winner_id
            tx.update_game(target)
            _place_winner(tx, target, now)
        elif complete_as_bye(target, now):
            tx.update_game(target)
            logger.info('Team %s advances on a bye in round %s', target.winner_id, target.round)
            _place_winner(tx, target, now)
    return target


def advance_winner(store, match_id: str, game_id: str, now=None):
    """
    Place the winner of a completed game into its next-round slot.

    Returns the next-round game, or None when the game was in the final round
    or has no winner.
    """
    now = resolve_now(now)
    with store.transaction() as tx:
        game = tx.get_game(game_id)
        if game is None or game.match_id != match_id:
            raise GameNotFound('Game not found in this match.', match_id=match_id, game_id=game_id)
        if not (game.is_completed and game.winner_id):
            return None
        target = _place_winner(tx, game, now)
    if target is not None:
        logger.info('Winner %s of game %s placed in round %s game %s',
                    game.winner_id, game.id, target.round, target.game_number)
    return target


def reconcile(store, match_id: str, now=None) -> List[dict]:
    """
    Recompute every winner placement of an elimination match.

    Returns the slots that changed as dicts with ``game_id``, ``slot`` and
    ``team_id``. Running it again on a consistent bracket changes nothing.
    """
    now = resolve_now(now)
    with store.transaction() as tx:
        match = tx.get_match(match_id)
        if match is None:
            raise MatchNotFound('Match not found.', match_id=match_id)
        if not match.is_elimination:
            return []
        before = {g.id: (g.team1_id, g.team2_id) for g in tx.games_for_match(match_id)}
        for game in tx.games_for_match(match_id):
            current = tx.get_game(game.id)
            if current.is_completed and current.winner_id:
                _place_winner(tx, current, now)
        changes = []
        for game in tx.games_for_match(match_id):
            old_team1, old_team2 = before[game.id]
            if game.team1_id != old_team1:
                changes.append({'game_id': game.id, 'slot': 'team1_id', 'team_id': game.team1_id})
            if game.team2_id != old_team2:
                changes.append({'game_id': game.id, 'slot': 'team2_id', 'team_id': game.team2_id})
    if changes:
        logger.warning('Reconcile repaired %d slot(s) in match %s', len(changes), match_id)
    return changes


def find_game(store, match_id: str, game_id: str):
    with store.transaction() as tx:
        game = tx.get_game(game_id)
    if game is None or game.match_id != match_id:
        raise GameNotFound('Game not found in this match.', match_id=match_id, game_id=game_id)
    return game
