"""Open-lobby listing and closing of abandoned lobbies."""

import threading
from datetime import timedelta
from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from storygame import db
from storygame.errors import InvalidInput
from storygame.models import Game, Turn
from . import clock, modes
from .state import STATUS_FINISHED, STATUS_WAITING, finish_game
from .transaction import game_operation, run_game_transaction


def _last_activity(game: Game):
    return game.updated_at or game.created_at


def _query_lobbies(scan_limit: int) -> List[Game]:
    return (Game.query
            .filter(Game.status == STATUS_WAITING, Game.mode == modes.MODE_MULTI)
            .order_by(Game.created_at.desc())
            .limit(scan_limit)
            .all())


def _scan_lobbies(scan_limit: int) -> List[Game]:
    """In-memory fallback used when the filtered/ordered query fails."""
    games = [g for g in Game.query.all() if g.status == STATUS_WAITING and g.mode == modes.MODE_MULTI]
    games.sort(key=lambda g: g.created_at, reverse=True)
    return games[:scan_limit]


def _partition(games: List[Game], now, stale_after: int, min_created_at=None) -> Tuple[List[Game], List[Game]]:
    cutoff = now - timedelta(seconds=stale_after)
    fresh, stale = [], []
    for game in games:
        if _last_activity(game) < cutoff:
            stale.append(game)
        elif min_created_at is None or game.created_at >= min_created_at:
            fresh.append(game)
    return fresh, stale


def close_stale_lobbies(game_ids: List[str], stale_after: int) -> int:
    """Finish each lobby that is still waiting and still idle past the window."""
    closed = 0
    for game_id in game_ids:
        def work(game):
            cutoff = clock.now() - timedelta(seconds=stale_after)
            if game.status != STATUS_WAITING or _last_activity(game) >= cutoff:
                return False
            finish_game(game, reason='stale_cleanup')
            return True
        try:
            if run_game_transaction(game_id, work):
                closed += 1
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[stale-lobby] game={game_id} close failed")
    if closed:
        current_app.logger.info(f"[stale-lobby] closed {closed} idle lobbies")
    return closed


def _close_in_background(game_ids: List[str], stale_after: int) -> None:
    app = current_app._get_current_object()
    if app.config.get('TESTING'):
        close_stale_lobbies(game_ids, stale_after)
        return

    def _worker():
        with app.app_context():
            close_stale_lobbies(game_ids, stale_after)

    threading.Thread(target=_worker, name='stale-lobby-cleanup', daemon=True).start()


@game_operation
def list_lobbies(limit=25, min_created_at=None):
    """Open multiplayer lobbies, newest first. Idle lobbies are closed on the way."""
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = 25
    limit = max(1, min(limit, 50))
    try:
        min_created = clock.parse_iso(min_created_at)
    except ValueError:
        raise InvalidInput('min_created_at must be an ISO timestamp')

    cfg = current_app.config
    stale_after = int(cfg.get('LOBBY_STALE_AFTER_SEC', 1800))
    scan_limit = max(limit, int(cfg.get('LOBBY_SCAN_LIMIT', 200)))
    try:
        candidates = _query_lobbies(scan_limit)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(f"[lobbies] indexed query failed, scanning in memory: {exc}")
        candidates = _scan_lobbies(scan_limit)

    fresh, stale = _partition(candidates, clock.now(), stale_after, min_created)
    if stale:
        _close_in_background([g.id for g in stale], stale_after)
    return {'lobbies': [g.to_lobby_dict() for g in fresh[:limit]]}


@game_operation
def cleanup_waiting_lobbies(before=None):
    """Close every waiting lobby, optionally only those created before ``before``."""
    try:
        cutoff = clock.parse_iso(before)
    except ValueError:
        raise InvalidInput('before must be an ISO timestamp')

    now = clock.now()
    query = Game.query.filter(Game.status == STATUS_WAITING)
    if cutoff is not None:
        query = query.filter(Game.created_at < cutoff)
    cleared = query.update({
        Game.status: STATUS_FINISHED,
        Game.ended_reason: 'cleanup',
        Game.current_player: None,
        Game.current_player_id: None,
        Game.turn_deadline: None,
        Game.guide_prompt: None,
        Game.updated_at: now,
        Game.version: Game.version + 1,
    }, synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[cleanup] closed {cleared} waiting lobbies before={before}")
    return {'cleared': cleared}


def reset_games() -> int:
    """Delete every game and its turns."""
    Turn.query.delete(synchronize_session=False)
    removed = Game.query.delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[reset] deleted {removed} games")
    return removed
