from flask import Blueprint, jsonify, request
from storygame.services.games import cleanup, completion, lobby, turns

games = Blueprint('games', __name__)


def _error(result):
    body = {k: v for k, v in result.items() if k != 'status'}
    return jsonify(body), result.get('status', 400)


def _game_payload(result, **extra):
    payload = {'game': result['game'].to_dict()}
    payload.update(extra)
    return payload


def _flag(value):
    return str(value).lower() in ('1', 'true', 'yes', 'on')


@games.route('/create', methods=['POST'])
def create_game():
    data = request.get_json(silent=True) or {}
    result = lobby.create_game(
        host_id=data.get('host_id'),
        host_name=data.get('host_name'),
        initial_prompt=data.get('initial_prompt'),
        turn_duration_seconds=data.get('turn_duration_seconds'),
        max_turns=data.get('max_turns'),
        max_players=data.get('max_players'),
        mode=data.get('mode'),
    )
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result)), 201


@games.route('/lobbies', methods=['GET'])
def list_lobbies():
    result = cleanup.list_lobbies(
        limit=request.args.get('limit', 25),
        min_created_at=request.args.get('min_created_at'),
    )
    if result.get('error'):
        return _error(result)
    return jsonify(result)


@games.route('/cleanup-lobbies', methods=['POST'])
def cleanup_lobbies():
    data = request.get_json(silent=True) or {}
    result = cleanup.cleanup_waiting_lobbies(before=data.get('before'))
    if result.get('error'):
        return _error(result)
    return jsonify(result)


@games.route('/<string:game_id>/join', methods=['POST'])
def join_game(game_id):
    data = request.get_json(silent=True) or {}
    result = lobby.join_game(
        game_id,
        player_id=data.get('player_id'),
        player_name=data.get('player_name'),
        host_id=data.get('host_id'),
    )
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result))


@games.route('/<string:game_id>/request-join', methods=['POST'])
def request_join(game_id):
    data = request.get_json(silent=True) or {}
    result = lobby.request_to_join(game_id, player_id=data.get('player_id'), player_name=data.get('player_name'))
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result, request=result.get('request'), requested=True)), 202


@games.route('/<string:game_id>/review-join', methods=['POST'])
def review_join(game_id):
    data = request.get_json(silent=True) or {}
    result = lobby.review_join_request(
        game_id,
        host_id=data.get('host_id'),
        player_id=data.get('player_id'),
        approve=bool(data.get('approve')),
    )
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result, approved=result['approved']))


@games.route('/<string:game_id>/start', methods=['POST'])
def start_game(game_id):
    data = request.get_json(silent=True) or {}
    result = lobby.start_game(game_id, player_id=data.get('player_id'))
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result))


@games.route('/<string:game_id>/preview', methods=['POST'])
def preview_turn(game_id):
    data = request.get_json(silent=True) or {}
    result = turns.preview_turn(game_id, player_id=data.get('player_id'), text=data.get('text'))
    if result.get('error'):
        return _error(result)
    return jsonify(result)


@games.route('/<string:game_id>/turn', methods=['POST'])
def submit_turn(game_id):
    data = request.get_json(silent=True) or {}
    result = turns.submit_turn(game_id, player_id=data.get('player_id'), text=data.get('text'))
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result, turn=result['turn'].to_dict(), scores=result.get('scores')))


@games.route('/<string:game_id>', methods=['GET'])
def get_game_state(game_id):
    result = turns.get_game_state(game_id, include_turns=_flag(request.args.get('include_turns')))
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result, info=result['info']))


@games.route('/<string:game_id>/abandon', methods=['POST'])
def abandon_game(game_id):
    data = request.get_json(silent=True) or {}
    result = lobby.abandon_game(game_id, player_id=data.get('player_id'), reason=data.get('reason'))
    if result.get('error'):
        return _error(result)
    return jsonify(_game_payload(result))


@games.route('/user/<string:user_id>/history', methods=['GET'])
def user_history(user_id):
    history = completion.get_user_history(user_id, limit=request.args.get('limit', completion.HISTORY_SIZE))
    return jsonify({'history': history})
