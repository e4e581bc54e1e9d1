"""State transitions shared by the lobby and turn engine.

All helpers mutate the Game in place and are meant to run inside a game
transaction. JSON columns are always reassigned (never mutated in place) so
SQLAlchemy sees the change.
"""

from typing import Optional

from storygame.errors import GameFull
from storygame.models import Game
from . import clock

STATUS_WAITING = 'waiting'
STATUS_ACTIVE = 'active'
STATUS_TIMEOUT = 'timeout'
STATUS_FINISHED = 'finished'

AI_PLAYER_IDS = frozenset({'ai-bot'})


def touch(game: Game, at=None) -> None:
    game.updated_at = at or clock.now()


def find_player(game: Game, player_id=None, name=None) -> Optional[dict]:
    for p in game.players or []:
        if player_id is not None and p.get('id') == player_id:
            return p
        if name is not None and p.get('name') == name:
            return p
    return None


def is_human(player: dict) -> bool:
    return bool(player.get('id')) and player.get('id') not in AI_PLAYER_IDS


def sync_current_player(game: Game) -> None:
    """Point current_player/current_player_id at current_player_index."""
    players = game.players or []
    if not players:
        game.current_player_index = 0
        game.current_player = None
        game.current_player_id = None
        return
    if not 0 <= (game.current_player_index or 0) < len(players):
        game.current_player_index = 0
    player = players[game.current_player_index or 0]
    game.current_player = player.get('name')
    game.current_player_id = player.get('id')


def arm_deadline(game: Game, seconds=None, at=None) -> None:
    duration = game.turn_duration_seconds if seconds is None else seconds
    game.turn_deadline = clock.deadline_after(duration, at)


def rotate_turn(game: Game, seconds=None, at=None) -> None:
    """Hand the turn to the next player in join order and re-arm the deadline.

    With nobody seated there is no current player and no deadline.
    """
    players = game.players or []
    if not players:
        game.current_player_index = 0
        game.current_player = None
        game.current_player_id = None
        game.turn_deadline = None
        return
    game.current_player_index = ((game.current_player_index or 0) + 1) % len(players)
    sync_current_player(game)
    arm_deadline(game, seconds, at)


def finish_game(game: Game, reason: Optional[str] = None, at=None) -> None:
    game.status = STATUS_FINISHED
    game.current_player = None
    game.current_player_id = None
    game.turn_deadline = None
    game.guide_prompt = None
    if reason:
        game.ended_reason = reason
    touch(game, at)


def add_player(game: Game, player_id, player_name) -> bool:
    """Seat a player unless already seated. Returns False for a repeat join."""
    if find_player(game, player_id=player_id) or find_player(game, name=player_name):
        return False
    if len(game.players or []) >= game.max_players:
        raise GameFull('Game is full')
    game.players = list(game.players or []) + [{'id': player_id, 'name': player_name}]
    if len(game.players) == 1:
        sync_current_player(game)
    return True
