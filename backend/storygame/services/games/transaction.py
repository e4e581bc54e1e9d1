"""Optimistic read-modify-write against a single row.

Game and leaderboard rows carry a ``version_id_col``; a flush that finds the
row moved on raises ``StaleDataError``. ``run_transaction`` reloads the row,
re-runs the work function against the newest committed state and tries
again, so every precondition is re-validated on each attempt.
"""

from functools import wraps
from typing import Callable, Optional, Type

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from storygame import db
from storygame.errors import GameError, NotFound, TransactionConflict
from storygame.models import Game


def run_transaction(model: Type[db.Model], key, work: Callable, *,
                    create: Optional[Callable] = None,
                    not_found: str = 'Not found'):
    """Run ``work(instance)`` and commit, retrying on concurrent writes.

    ``work`` may raise a GameError to abort without writing; anything it
    returns is handed back after the commit succeeds. ``create`` builds a
    fresh instance when the row does not exist yet.
    """
    attempts = max(1, int(current_app.config.get('TRANSACTION_RETRIES', 5)))
    for attempt in range(1, attempts + 1):
        instance = db.session.get(model, key, populate_existing=True)
        if instance is None:
            if create is None:
                db.session.rollback()
                raise NotFound(not_found)
            instance = create()
            db.session.add(instance)
        try:
            result = work(instance)
            db.session.commit()
            return result
        except (StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            current_app.logger.warning(
                f"[txn-retry] {model.__tablename__}={key} attempt={attempt}/{attempts} {type(exc).__name__}"
            )
        except Exception:
            db.session.rollback()
            raise
    raise TransactionConflict('Game was modified concurrently, please retry')


def run_game_transaction(game_id, work: Callable):
    return run_transaction(Game, game_id, work, not_found='Game not found')


def game_operation(func):
    """Turn GameErrors raised by an operation into ``{'error', 'status'}`` results."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GameError as exc:
            return exc.to_result()
    return wrapper
