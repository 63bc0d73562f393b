"""
Flask web API for The Match.
"""
import os
import logging
import yaml
import requests
from functools import wraps
from flask import Flask, request, jsonify, g
from thematch import matches, progression, registry, status, teams
from thematch.bracket import bracket_view
from thematch.errors import MatchError, ValidationFailed
from thematch.storage import YamlStore

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('MATCH_DATA_DIR', os.path.join(BASE_DIR, 'data'))
TOKENS_FILE_NAME = 'tokens.yaml'

# External identity provider; when unset, bearer tokens come from tokens.yaml
AUTH_PROVIDER_URL = os.environ.get('AUTH_PROVIDER_URL', '').rstrip('/')
AUTH_PROVIDER_API_KEY = os.environ.get('AUTH_PROVIDER_API_KEY', '')
AUTH_TIMEOUT_SECONDS = float(os.environ.get('AUTH_TIMEOUT_SECONDS', '5'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
app.logger.setLevel(LOG_LEVEL)


def get_store() -> YamlStore:
    """Store for the configured data directory."""
    return YamlStore(DATA_DIR)


def load_tokens() -> dict:
    """Load the development token table ``{token: user_id}`` from YAML."""
    tokens_file = os.path.join(DATA_DIR, TOKENS_FILE_NAME)
    if not os.path.exists(tokens_file):
        return {}
    try:
        with open(tokens_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data.get('tokens', {}) if data else {}
    except Exception as e:
        app.logger.warning(f'Failed to parse {tokens_file}: {e}')
        return {}


def resolve_token(token: str):
    """Return the user id the bearer token belongs to, or None."""
    if not AUTH_PROVIDER_URL:
        return load_tokens().get(token)
    try:
        response = requests.get(
            f'{AUTH_PROVIDER_URL}/auth/v1/user',
            headers={'Authorization': f'Bearer {token}', 'apikey': AUTH_PROVIDER_API_KEY},
            timeout=AUTH_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        app.logger.warning(f'Auth provider unreachable: {e}')
        return None
    if response.status_code != 200:
        return None
    try:
        user = response.json()
    except ValueError as e:
        app.logger.warning(f'Auth provider returned an unreadable body: {e}')
        return None
    if not isinstance(user, dict):
        return None
    return user.get('id')


def require_auth(f):
    """Require a valid bearer token; sets ``g.user_id``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return jsonify({'success': False, 'error': 'Missing or invalid Authorization header'}), 401

        user_id = resolve_token(auth_header[7:])  # Strip "Bearer "
        if not user_id:
            return jsonify({'success': False, 'error': 'Invalid or expired token'}), 401

        g.user_id = user_id
        return f(*args, **kwargs)
    return decorated_function


@app.errorhandler(MatchError)
def handle_match_error(error):
    """Render domain errors as JSON with their HTTP status."""
    if error.status_code >= 500:
        app.logger.error(f'{error.code}: {error.message}')
    return jsonify(error.to_dict()), error.status_code


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed('Request body must be a JSON object.')
    return data


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise ValidationFailed(f'{name} must be an integer.')


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

@app.route('/api/teams', methods=['POST'])
@require_auth
def api_create_team():
    """Create a team captained by the caller."""
    data = _json_body()
    team = teams.create_team(
        get_store(),
        name=data.get('name'),
        captain_id=g.user_id,
        description=data.get('description'),
        logo_url=data.get('logo_url'),
    )
    return jsonify({'success': True, 'data': team.to_dict(), 'message': 'Team created.'}), 201


@app.route('/api/teams/<team_id>')
@require_auth
def api_get_team(team_id):
    team = teams.get_team(get_store(), team_id)
    return jsonify({'success': True, 'data': team.to_dict()})


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

@app.route('/api/matches')
@require_auth
def api_list_matches():
    """List matches with optional filters and pagination."""
    items, pagination = matches.list_matches(
        get_store(),
        status=request.args.get('status'),
        match_format=request.args.get('format') or request.args.get('type'),
        creator_id=request.args.get('creator_id'),
        search=request.args.get('search'),
        page=_int_arg('page', 1),
        limit=_int_arg('limit', 10),
    )
    return jsonify({
        'success': True,
        'data': [m.to_dict() for m in items],
        'pagination': pagination,
    })


@app.route('/api/matches', methods=['POST'])
@require_auth
def api_create_match():
    match = matches.create_match(get_store(), g.user_id, _json_body())
    return jsonify({'success': True, 'data': match.to_dict(), 'message': 'Match created.'}), 201


@app.route('/api/matches/<match_id>')
@require_auth
def api_get_match(match_id):
    store = get_store()
    match = matches.get_match(store, match_id)
    data = match.to_dict()
    data['participant_stats'] = registry.participant_stats(store, match_id)
    return jsonify({'success': True, 'data': data})


@app.route('/api/matches/<match_id>', methods=['DELETE'])
@require_auth
def api_delete_match(match_id):
    matches.delete_match(get_store(), match_id, g.user_id)
    return jsonify({'success': True, 'message': 'Match deleted.'})


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

@app.route('/api/matches/<match_id>/status')
@require_auth
def api_match_status(match_id):
    """Current status, allowed transitions and their requirements."""
    return jsonify({'success': True, 'data': status.status_summary(get_store(), match_id)})


@app.route('/api/matches/<match_id>/status', methods=['PATCH'])
@require_auth
def api_update_match_status(match_id):
    """Move a match to a new status."""
    data = _json_body()
    target = data.get('status')
    if not target:
        raise ValidationFailed('Status is required.')
    match, previous = status.transition(
        get_store(),
        match_id,
        target,
        g.user_id,
        reason=data.get('reason'),
        override=bool(data.get('override', False)),
    )
    return jsonify({
        'success': True,
        'data': match.to_dict(),
        'message': f'Match status updated from {previous} to {match.status}.',
        'transition': {'from': previous, 'to': match.status},
    })


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

@app.route('/api/matches/<match_id>/participants')
@require_auth
def api_list_participants(match_id):
    store = get_store()
    participants = registry.list_participants(store, match_id)
    return jsonify({
        'success': True,
        'data': [p.to_dict() for p in participants],
        'stats': registry.stats_for(participants),
    })


@app.route('/api/matches/<match_id>/participants', methods=['POST'])
@require_auth
def api_apply_to_match(match_id):
    """Apply to a match on behalf of a team the caller captains."""
    data = _json_body()
    team_id = data.get('team_id')
    if not team_id:
        raise ValidationFailed('team_id is required.')
    participant = registry.apply(get_store(), match_id, team_id, g.user_id, notes=data.get('notes'))
    return jsonify({
        'success': True,
        'data': participant.to_dict(),
        'message': 'Application submitted.',
    }), 201


@app.route('/api/matches/<match_id>/participants/<team_id>', methods=['PUT'])
@require_auth
def api_respond_to_application(match_id, team_id):
    """Approve or reject a team's pending application."""
    data = _json_body()
    store = get_store()
    participant = registry.find_participant(store, match_id, team_id)
    participant = registry.respond(
        store,
        participant.id,
        data.get('status'),
        g.user_id,
        reason=data.get('reason'),
        notes=data.get('notes'),
    )
    return jsonify({
        'success': True,
        'data': participant.to_dict(),
        'message': f'Application {participant.status}.',
    })


@app.route('/api/matches/<match_id>/participants/<team_id>', methods=['DELETE'])
@require_auth
def api_withdraw_application(match_id, team_id):
    store = get_store()
    participant = registry.find_participant(store, match_id, team_id)
    registry.withdraw(store, participant.id, g.user_id)
    return jsonify({'success': True, 'message': 'Application withdrawn.'})


# ---------------------------------------------------------------------------
# Games and results
# ---------------------------------------------------------------------------

@app.route('/api/matches/<match_id>/games')
@require_auth
def api_match_games(match_id):
    """Bracket view with every game and the state of each team slot."""
    store = get_store()
    match = matches.get_match(store, match_id)
    with store.transaction() as tx:
        games = tx.games_for_match(match_id)
    return jsonify({'success': True, 'data': bracket_view(match, games)})


@app.route('/api/matches/<match_id>/games/<game_id>/score', methods=['POST'])
@app.route('/api/matches/<match_id>/games/<game_id>/results', methods=['POST'])
@require_auth
def api_record_score(match_id, game_id):
    """Record the final score of a game; the winner advances."""
    data = _json_body()
    progression.record_result(
        get_store(),
        match_id,
        game_id,
        data.get('team1_score'),
        data.get('team2_score'),
        g.user_id,
    )
    game = progression.find_game(get_store(), match_id, game_id)
    return jsonify({'success': True, 'data': game.to_dict(), 'message': 'Result recorded.'})


@app.route('/api/matches/<match_id>/results')
@require_auth
def api_match_results(match_id):
    match = matches.get_match(get_store(), match_id)
    return jsonify({
        'success': True,
        'data': {
            'match_id': match.id,
            'status': match.status,
            'current_round': match.current_round,
            'results': match.results,
        },
    })


if __name__ == '__main__':
    app.run(debug=True, port=5000)
