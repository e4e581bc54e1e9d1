from datetime import timedelta

from storygame import db
from storygame.models import Game
from storygame.services.ai import prompts
from storygame.services.games import lobby


def _create(**kwargs):
    params = {'host_id': 'host-1', 'host_name': 'Host', 'initial_prompt': 'Start', 'mode': 'multi'}
    params.update(kwargs)
    result = lobby.create_game(**params)
    assert 'error' not in result, result
    return result['game']


def _fresh(game_id):
    return db.session.get(Game, game_id, populate_existing=True)


def test_create_multi_seats_host_in_lobby(flask_app):
    game = _create()
    assert game.status == 'waiting'
    assert game.players == [{'id': 'host-1', 'name': 'Host'}]
    assert game.current_player_id == 'host-1'
    assert game.current_player == 'Host'
    assert game.turn_deadline is None
    assert game.requires_approval is True
    assert game.guide_prompt is None
    assert game.initial_prompt == 'Start'
    # before the first turn the opening scene doubles as the guide prompt
    assert game.to_dict()['guide_prompt'] == 'Start'
    assert 'story_so_far' not in game.to_dict()


def test_create_single_and_rapid_start_immediately(flask_app):
    single = _create(mode='single', max_players=4)
    assert single.status == 'active'
    assert single.max_players == 1
    assert single.turn_deadline is not None
    assert single.requires_approval is False

    rapid = _create(mode='rapid', host_id='host-2')
    assert rapid.status == 'active'
    assert rapid.turn_duration_seconds == 60
    assert rapid.max_turns == 50
    assert rapid.turn_deadline is not None


def test_create_requires_host_id(flask_app):
    assert lobby.create_game(host_name='Host') == {'error': 'host_id is required', 'status': 400}
    assert Game.query.count() == 0


def test_create_defaults_blank_host_name(flask_app):
    game = _create(host_name='   ')
    assert game.host_name == 'Host'
    assert game.players[0]['name'] == 'Host'


def test_create_fetches_opening_prompt_once(flask_app, monkeypatch):
    seeds = []

    def fake_opening(seed=None):
        seeds.append(seed)
        return f'INIT-{seed}'

    monkeypatch.setattr(prompts, 'generate_initial_prompt', fake_opening)
    game = _create(initial_prompt='Lighthouse')
    assert seeds == ['Lighthouse']
    assert game.initial_prompt == 'INIT-Lighthouse'


def test_direct_join_needs_host_approval(flask_app):
    game = _create()
    result = lobby.join_game(game.id, player_id='p2', player_name='P2')
    assert result == {'error': 'This game requires host approval to join', 'status': 400}

    joined = lobby.join_game(game.id, player_id='p2', player_name='P2', host_id='host-1')
    assert [p['id'] for p in joined['game'].players] == ['host-1', 'p2']


def test_join_is_idempotent_by_id_and_name(flask_app):
    game = _create()
    lobby.join_game(game.id, player_id='p2', player_name='P2', host_id='host-1')
    again = lobby.join_game(game.id, player_id='p2', player_name='Someone')
    same_name = lobby.join_game(game.id, player_id='p9', player_name='P2')
    assert 'error' not in again and 'error' not in same_name
    assert len(_fresh(game.id).players) == 2


def test_join_never_exceeds_capacity(flask_app):
    game = _create(max_players=2)
    lobby.join_game(game.id, player_id='p2', player_name='P2', host_id='host-1')
    for n in range(3, 7):
        result = lobby.join_game(game.id, player_id=f'p{n}', player_name=f'P{n}', host_id='host-1')
        assert result == {'error': 'Game is full', 'status': 400}
    assert len(_fresh(game.id).players) == 2


def test_join_rejections(flask_app):
    single = _create(mode='single')
    assert lobby.join_game(single.id, player_id='p2', player_name='P2')['error'] == 'Cannot join a single-player game'

    assert lobby.join_game('missing', player_id='p2', player_name='P2') == {'error': 'Game not found', 'status': 404}
    assert lobby.join_game(single.id, player_id='p2', player_name='  ')['error'] == 'Player name is required'

    started = _create(host_id='host-3')
    lobby.join_game(started.id, player_id='p2', player_name='P2', host_id='host-3')
    lobby.start_game(started.id, player_id='host-3')
    result = lobby.join_game(started.id, player_id='p4', player_name='P4', host_id='host-3')
    assert result == {'error': 'Game has already started', 'status': 400}

    lobby.abandon_game(started.id, player_id='host-3')
    assert lobby.join_game(started.id, player_id='p4', player_name='P4')['error'] == 'Game has finished'


def test_request_to_join_is_idempotent(flask_app):
    game = _create()
    first = lobby.request_to_join(game.id, player_id='p2', player_name='P2')
    second = lobby.request_to_join(game.id, player_id='p2', player_name='P2 again')
    assert first['request']['player_id'] == 'p2'
    assert second['request'] == first['request']
    pending = _fresh(game.id).pending_requests
    assert len(pending) == 1
    assert pending[0]['player_name'] == 'P2'
    assert pending[0]['requested_at'].endswith('Z')


def test_request_to_join_full_lobby(flask_app):
    game = _create(max_players=2)
    lobby.join_game(game.id, player_id='p2', player_name='P2', host_id='host-1')
    result = lobby.request_to_join(game.id, player_id='p3', player_name='P3')
    assert result == {'error': 'Game is full', 'status': 400}
    assert _fresh(game.id).pending_requests == []


def test_request_to_join_only_multi_lobbies(flask_app):
    rapid = _create(mode='rapid')
    assert lobby.request_to_join(rapid.id, player_id='p2', player_name='P2')['error'] == 'Cannot join a single-player game'


def test_review_approve_and_deny(flask_app):
    game = _create()
    lobby.request_to_join(game.id, player_id='p2', player_name='P2')
    lobby.request_to_join(game.id, player_id='p3', player_name='P3')

    approved = lobby.review_join_request(game.id, host_id='host-1', player_id='p2', approve=True)
    assert approved['approved'] is True
    denied = lobby.review_join_request(game.id, host_id='host-1', player_id='p3', approve=False)
    assert denied['approved'] is False

    game = _fresh(game.id)
    assert [p['id'] for p in game.players] == ['host-1', 'p2']
    assert game.pending_requests == []


def test_review_rejections(flask_app):
    game = _create()
    lobby.request_to_join(game.id, player_id='p2', player_name='P2')

    forbidden = lobby.review_join_request(game.id, host_id='p2', player_id='p2', approve=True)
    assert forbidden == {'error': 'Only the host can review join requests', 'status': 403}
    missing = lobby.review_join_request(game.id, host_id='host-1', player_id='nobody', approve=True)
    assert missing == {'error': 'Join request not found', 'status': 404}
    assert len(_fresh(game.id).pending_requests) == 1


def test_review_approval_respects_capacity(flask_app):
    game = _create(max_players=2)
    lobby.request_to_join(game.id, player_id='p2', player_name='P2')
    lobby.request_to_join(game.id, player_id='p3', player_name='P3')

    lobby.review_join_request(game.id, host_id='host-1', player_id='p2', approve=True)
    result = lobby.review_join_request(game.id, host_id='host-1', player_id='p3', approve=True)
    assert result == {'error': 'Game is full', 'status': 400}

    game = _fresh(game.id)
    assert len(game.players) == 2
    assert [r['player_id'] for r in game.pending_requests] == ['p3']


def test_review_after_start_is_invalid(flask_app):
    game = _create()
    lobby.join_game(game.id, player_id='p2', player_name='P2', host_id='host-1')
    lobby.request_to_join(game.id, player_id='p3', player_name='P3')
    lobby.start_game(game.id, player_id='host-1')
    result = lobby.review_join_request(game.id, host_id='host-1', player_id='p3', approve=True)
    assert result == {'error': 'Game is no longer accepting players', 'status': 400}


def test_start_rules(flask_app, frozen_clock):
    game = _create()
    assert lobby.start_game(game.id, player_id='host-1') == {
        'error': 'At least 2 players are required to start', 'status': 400,
    }
    lobby.join_game(game.id, player_id='p2', player_name='P2', host_id='host-1')
    assert lobby.start_game(game.id, player_id='p2') == {'error': 'Only the host can start the game', 'status': 403}

    started = lobby.start_game(game.id, player_id='host-1')['game']
    assert started.status == 'active'
    assert started.current_player_id == 'host-1'
    deadline = started.turn_deadline
    assert deadline == frozen_clock.current + timedelta(seconds=60)

    frozen_clock.advance(5)
    again = lobby.start_game(game.id, player_id='host-1')['game']
    assert again.turn_deadline == deadline


def test_abandon(flask_app):
    game = _create()
    assert lobby.abandon_game(game.id, player_id='p2') == {'error': 'Only the host can close the game', 'status': 403}

    closed = lobby.abandon_game(game.id, player_id='host-1')['game']
    assert closed.status == 'finished'
    assert closed.ended_reason == 'abandoned'
    assert closed.current_player_id is None
    assert closed.turn_deadline is None

    again = lobby.abandon_game(game.id, player_id='host-1', reason='other')
    assert again['game'].ended_reason == 'abandoned'
    assert lobby.start_game(game.id, player_id='host-1') == {'error': 'Game has finished', 'status': 400}


def test_abandon_with_reason(flask_app):
    game = _create(mode='single')
    closed = lobby.abandon_game(game.id, player_id='host-1', reason='host left')['game']
    assert closed.ended_reason == 'host left'


def test_request_with_seated_name_is_rejected(flask_app):
    game = _create()
    result = lobby.request_to_join(game.id, player_id='p2', player_name='Host')
    assert result == {'error': 'Player name is already taken', 'status': 400}
    assert _fresh(game.id).pending_requests == []


def test_approval_never_drops_a_request_it_cannot_seat(flask_app):
    game = _create()
    lobby.request_to_join(game.id, player_id='p2', player_name='Bo')
    lobby.join_game(game.id, player_id='p9', player_name='Bo', host_id='host-1')

    result = lobby.review_join_request(game.id, host_id='host-1', player_id='p2', approve=True)
    assert result == {'error': 'Player name is already taken', 'status': 400}

    game = _fresh(game.id)
    assert [p['id'] for p in game.players] == ['host-1', 'p9']
    assert [r['player_id'] for r in game.pending_requests] == ['p2']

    denied = lobby.review_join_request(game.id, host_id='host-1', player_id='p2', approve=False)
    assert denied['approved'] is False
    assert _fresh(game.id).pending_requests == []
