"""Game creation and lobby membership.

Every membership change re-reads and rewrites the whole game row inside one
optimistic transaction, so two joins racing for the last seat cannot both
get past the capacity check.
"""

from flask import current_app

from storygame import db
from storygame.errors import (ApprovalRequired, Forbidden, GameFinished, GameFull, InvalidInput, InvalidState,
                              NotFound, NotWaiting, WrongMode)
from storygame.models import Game
from storygame.services.ai import prompts
from . import clock, modes
from .state import (STATUS_ACTIVE, STATUS_FINISHED, STATUS_WAITING, add_player, arm_deadline, find_player,
                    finish_game, sync_current_player, touch)
from .transaction import game_operation, run_game_transaction

DEFAULT_HOST_NAME = 'Host'


def _clean_name(value, default=None):
    name = str(value).strip() if value is not None else ''
    return name or default


@game_operation
def create_game(host_id=None, host_name=None, initial_prompt=None, turn_duration_seconds=None,
                max_turns=None, max_players=None, mode=None):
    """Create a game with the host seated as the first (and current) player."""
    if not host_id:
        raise InvalidInput('host_id is required')
    host_id = str(host_id)
    clean_host = _clean_name(host_name, DEFAULT_HOST_NAME)
    settings = modes.resolve_settings(
        mode,
        turn_duration_seconds=turn_duration_seconds,
        max_turns=max_turns,
        max_players=max_players,
        configured_min=current_app.config.get('MIN_PLAYERS'),
    )
    opening = prompts.generate_initial_prompt(initial_prompt)
    now = clock.now()

    game = Game(
        host_id=host_id,
        host_name=clean_host,
        mode=settings['mode'],
        status=STATUS_WAITING if settings['has_lobby'] else STATUS_ACTIVE,
        initial_prompt=opening,
        guide_prompt=None,
        story_so_far='',
        turns_count=0,
        max_turns=settings['max_turns'],
        turn_duration_seconds=settings['turn_duration_seconds'],
        max_players=settings['max_players'],
        requires_approval=settings['requires_approval'],
        players=[{'id': host_id, 'name': clean_host}],
        pending_requests=[],
        current_player_index=0,
        created_at=now,
        updated_at=now,
    )
    sync_current_player(game)
    if game.status == STATUS_ACTIVE:
        arm_deadline(game, at=now)
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(f"[create] game={game.id} mode={game.mode} host={host_id}")
    return {'game': game}


def _require_joinable(game: Game):
    if game.status == STATUS_FINISHED:
        raise GameFinished('Game has finished')
    if game.mode != modes.MODE_MULTI:
        raise WrongMode('Cannot join a single-player game')


@game_operation
def join_game(game_id, player_id=None, player_name=None, host_id=None):
    """Seat a player directly.

    Lobbies that require approval only accept a direct join vouched for by
    the host (``host_id``); everyone else goes through request-to-join.
    """
    clean_name = _clean_name(player_name)
    if not clean_name:
        raise InvalidInput('Player name is required')
    if not player_id:
        raise InvalidInput('Player id is required')
    player_id = str(player_id)

    def work(game):
        _require_joinable(game)
        if find_player(game, player_id=player_id) or find_player(game, name=clean_name):
            return {'game': game}
        if game.status != STATUS_WAITING:
            raise NotWaiting('Game has already started')
        if game.requires_approval and (host_id is None or str(host_id) != game.host_id):
            raise ApprovalRequired('This game requires host approval to join')
        add_player(game, player_id, clean_name)
        touch(game)
        return {'game': game}

    result = run_game_transaction(game_id, work)
    current_app.logger.info(f"[join] game={game_id} player={player_id}")
    return result


@game_operation
def request_to_join(game_id, player_id=None, player_name=None):
    clean_name = _clean_name(player_name)
    if not clean_name:
        raise InvalidInput('Player name is required')
    if not player_id:
        raise InvalidInput('Player id is required')
    player_id = str(player_id)

    def work(game):
        _require_joinable(game)
        if game.status != STATUS_WAITING:
            raise NotWaiting('Game has already started')
        if find_player(game, player_id=player_id):
            return {'game': game, 'request': None}
        if find_player(game, name=clean_name):
            raise InvalidState('Player name is already taken')
        existing = next((r for r in game.pending_requests or [] if r.get('player_id') == player_id), None)
        if existing:
            return {'game': game, 'request': existing}
        if len(game.players or []) >= game.max_players:
            raise GameFull('Game is full')
        request = {
            'player_id': player_id,
            'player_name': clean_name,
            'requested_at': clock.to_iso(clock.now()),
        }
        game.pending_requests = list(game.pending_requests or []) + [request]
        touch(game)
        return {'game': game, 'request': request}

    result = run_game_transaction(game_id, work)
    current_app.logger.info(f"[join-request] game={game_id} player={player_id}")
    return result


@game_operation
def review_join_request(game_id, host_id=None, player_id=None, approve=False):
    """Host approves (seats) or denies a pending join request."""
    if not player_id:
        raise InvalidInput('Player id is required')
    player_id = str(player_id)

    def work(game):
        if host_id is None or str(host_id) != game.host_id:
            raise Forbidden('Only the host can review join requests')
        if game.status != STATUS_WAITING:
            raise InvalidState('Game is no longer accepting players')
        pending = list(game.pending_requests or [])
        request = next((r for r in pending if r.get('player_id') == player_id), None)
        if request is None:
            raise NotFound('Join request not found')
        game.pending_requests = [r for r in pending if r.get('player_id') != player_id]
        if approve and not find_player(game, player_id=player_id):
            name = request.get('player_name') or player_id
            if find_player(game, name=name):
                raise InvalidState('Player name is already taken')
            add_player(game, player_id, name)
        touch(game)
        return {'game': game, 'approved': bool(approve)}

    result = run_game_transaction(game_id, work)
    current_app.logger.info(
        f"[join-review] game={game_id} host={host_id} player={player_id} approved={bool(approve)}"
    )
    return result


@game_operation
def start_game(game_id, player_id=None):
    min_players = current_app.config.get('MIN_PLAYERS')

    def work(game):
        if game.status == STATUS_FINISHED:
            raise GameFinished('Game has finished')
        if game.status == STATUS_ACTIVE:
            return {'game': game}
        if game.mode == modes.MODE_MULTI:
            if player_id is None or str(player_id) != game.host_id:
                raise Forbidden('Only the host can start the game')
            required = modes.min_players_to_start(game.mode, min_players)
            if len(game.players or []) < required:
                raise InvalidState(f'At least {required} players are required to start')
        now = clock.now()
        game.status = STATUS_ACTIVE
        sync_current_player(game)
        if game.players:
            arm_deadline(game, at=now)
        touch(game, now)
        return {'game': game}

    result = run_game_transaction(game_id, work)
    current_app.logger.info(f"[start] game={game_id} by={player_id}")
    return result


@game_operation
def abandon_game(game_id, player_id=None, reason=None):
    """Host closes the game early; no scoring runs."""
    def work(game):
        if player_id is None or str(player_id) != game.host_id:
            raise Forbidden('Only the host can close the game')
        if game.status == STATUS_FINISHED:
            return {'game': game}
        finish_game(game, reason=_clean_name(reason, 'abandoned'))
        return {'game': game}

    result = run_game_transaction(game_id, work)
    current_app.logger.info(f"[abandon] game={game_id} by={player_id}")
    return result
