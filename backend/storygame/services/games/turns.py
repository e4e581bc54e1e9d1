"""Turn engine: deadline-gated submissions and the game state machine.

    waiting -> active -> (timeout -> active) ... -> finished

There is no background timer. A lapsed deadline is noticed the next time
anyone submits, previews or reads the game: rapid games end on the spot,
other modes pass the turn to the next player without recording a turn.
``timeout`` only ever appears in the error returned to the caller; the row
goes straight back to ``active`` with the next player's deadline armed.
"""

from typing import Optional

from flask import current_app

from storygame import db
from storygame.errors import GameFinished, InvalidInput, InvalidState, NotAMember, NotFound, NotYourTurn, TurnTimeout
from storygame.models import Game, Turn
from storygame.services.ai import prompts
from . import clock, completion, modes
from .state import (STATUS_ACTIVE, STATUS_FINISHED, STATUS_TIMEOUT, STATUS_WAITING, arm_deadline, find_player, finish_game,
                    rotate_turn, touch)
from .transaction import game_operation, run_game_transaction


def _require_turn_taker(game: Game, player_id) -> dict:
    if game.status == STATUS_FINISHED:
        raise GameFinished('Game has finished')
    if game.status == STATUS_WAITING:
        raise InvalidState('Game has not started yet')
    player = find_player(game, player_id=player_id)
    if player is None:
        raise NotAMember('Player must join the game before submitting a turn')
    if player_id != game.current_player_id:
        raise NotYourTurn(f"It is not {player.get('name')}'s turn", current_player=game.current_player)
    return player


def _expire_turn(game: Game, now) -> Optional[dict]:
    """Apply a lapsed deadline. Returns the timeout result, or None if still in time."""
    if game.status != STATUS_ACTIVE or not clock.is_expired(game.turn_deadline, now):
        return None
    timed_out = game.current_player
    if game.mode == modes.MODE_RAPID:
        finish_game(game, reason='timeout', at=now)
        current_app.logger.info(f"[timeout] game={game.id} player={timed_out} finished=True")
        return TurnTimeout('Turn timed out', finished=True).to_result()

    game.status = STATUS_TIMEOUT
    rotate_turn(game, at=now)
    game.status = STATUS_ACTIVE
    touch(game, now)
    current_app.logger.info(f"[timeout] game={game.id} player={timed_out} next={game.current_player}")
    return TurnTimeout(
        'Turn timed out',
        timed_out_player=timed_out,
        next_player=game.current_player,
        turn_deadline=clock.to_iso(game.turn_deadline),
    ).to_result()


def _timeout_preview(game: Game) -> dict:
    """What ``_expire_turn`` would report, without touching the row."""
    if game.mode == modes.MODE_RAPID:
        return TurnTimeout('Turn timed out', finished=True).to_result()
    players = game.players or []
    next_player = None
    if players:
        next_player = players[((game.current_player_index or 0) + 1) % len(players)].get('name')
    return TurnTimeout('Turn timed out', timed_out_player=game.current_player, next_player=next_player).to_result()


def _last_line(text: str) -> str:
    lines = [line for line in text.split('\n') if line.strip()]
    return lines[-1] if lines else text


def _plan_turn(game: Game, clean_text: str) -> dict:
    """Work out order, story text, finish flag and next prompt for a turn."""
    order = (game.turns_count or 0) + 1
    story = f"{game.story_so_far}\n\n{clean_text}" if game.story_so_far else clean_text
    will_finish = bool(game.max_turns) and order >= game.max_turns
    prompt_in_force = game.visible_prompt or game.initial_prompt
    next_prompt = None
    if not will_finish:
        next_prompt = prompts.generate_guide_prompt(
            story_so_far=story,
            last_turn_text=_last_line(clean_text),
            previous_prompt=prompt_in_force,
            turn_number=order + 1,
            initial_prompt=game.initial_prompt,
        )
    return {
        'order': order,
        'story': story,
        'will_finish': will_finish,
        'prompt_in_force': prompt_in_force,
        'next_prompt': next_prompt,
    }


@game_operation
def submit_turn(game_id, player_id=None, text=None):
    """Commit one turn for the current player.

    On the turn that reaches ``max_turns`` the game finishes and, once the
    transaction has committed, the completion pipeline scores it.
    """
    if not player_id:
        raise InvalidInput('Player id is required')
    player_id = str(player_id)

    def work(game):
        now = clock.now()
        player = _require_turn_taker(game, player_id)
        if game.turn_deadline is None:
            arm_deadline(game, at=now)
        timeout = _expire_turn(game, now)
        if timeout is not None:
            return timeout

        clean_text = (text or '').strip()
        if not clean_text:
            raise InvalidInput('Turn text is required')

        plan = _plan_turn(game, clean_text)
        turn = Turn(
            game_id=game.id,
            order=plan['order'],
            player_id=player_id,
            player_name=player.get('name') or player_id,
            text=clean_text,
            prompt_used=plan['prompt_in_force'],
            created_at=now,
        )
        db.session.add(turn)

        game.story_so_far = plan['story']
        game.turns_count = plan['order']
        game.last_turn = {
            'order': turn.order,
            'player_id': turn.player_id,
            'player_name': turn.player_name,
            'text': turn.text,
            'prompt_used': turn.prompt_used,
            'created_at': clock.to_iso(now),
        }
        if plan['will_finish']:
            finish_game(game, at=now)
        else:
            game.status = STATUS_ACTIVE
            game.guide_prompt = plan['next_prompt']
            game.turn_duration_seconds = modes.decayed_duration(game.mode, game.turn_duration_seconds)
            rotate_turn(game, at=now)
            touch(game, now)
        return {'game': game, 'turn': turn, 'finished': plan['will_finish']}

    result = run_game_transaction(game_id, work)
    if result.get('error'):
        return result

    current_app.logger.info(
        f"[turn] game={game_id} order={result['turn'].order} player={player_id} finished={result['finished']}"
    )
    result['scores'] = None
    if result['finished']:
        result['scores'] = completion.finalize_game(game_id)
        result['game'] = db.session.get(Game, game_id)
    return result


@game_operation
def preview_turn(game_id, player_id=None, text=None):
    """Validate a would-be turn and return the prompt it would produce. Writes nothing."""
    if not player_id:
        raise InvalidInput('Player id is required')
    player_id = str(player_id)

    game = db.session.get(Game, game_id)
    if game is None:
        raise NotFound('Game not found')
    _require_turn_taker(game, player_id)
    if game.status == STATUS_ACTIVE and clock.is_expired(game.turn_deadline):
        return _timeout_preview(game)

    clean_text = (text or '').strip()
    if not clean_text:
        raise InvalidInput('Turn text is required')

    plan = _plan_turn(game, clean_text)
    return {'preview': plan['next_prompt'], 'order': plan['order'], 'finishing': plan['will_finish']}


def describe_game(game: Game, now=None) -> dict:
    now = now or clock.now()
    players = game.players or []
    remaining_turns = None
    if game.max_turns:
        remaining_turns = max(0, game.max_turns - (game.turns_count or 0))
    return {
        'status': game.status,
        'current_player': game.current_player,
        'next_deadline': clock.to_iso(game.turn_deadline),
        'time_remaining_seconds': clock.seconds_remaining(game.turn_deadline, now),
        'remaining_turns': remaining_turns,
        'max_turns': game.max_turns,
        'player_count': len(players),
        'max_players': game.max_players,
        'is_full': len(players) >= game.max_players,
        'pending_requests': len(game.pending_requests or []),
        'scores': game.scores,
    }


@game_operation
def get_game_state(game_id, include_turns=False):
    """Read a game, applying any lapsed deadline first."""
    def work(game):
        _expire_turn(game, clock.now())
        return game

    game = run_game_transaction(game_id, work)
    info = describe_game(game)
    if include_turns:
        info['turns'] = [t.to_dict() for t in game.turns.all()]
    return {'game': game, 'info': info}
