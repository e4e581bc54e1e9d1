"""Post-game pipeline: judge the story, save it to each player's history and
update the leaderboard.

Runs after the finishing turn has committed. Nothing here may undo or
re-surface as an error on that turn, so every step logs its own failure and
the pipeline carries on.
"""

import re
from typing import List, Optional

from flask import current_app

from storygame import db
from storygame.models import Game, LeaderboardEntry, SavedGame, Turn
from storygame.services.ai import scoring
from . import clock
from .state import is_human
from .transaction import run_game_transaction, run_transaction

HISTORY_SIZE = 5
LEADERBOARD_SIZE = 10


def finalize_game(game_id) -> Optional[dict]:
    """Score a finished game and fan the result out. Returns the scores (or None)."""
    game = db.session.get(Game, game_id)
    if game is None:
        return None
    turns = [t.to_dict() for t in Turn.query.filter_by(game_id=game_id).order_by(Turn.order).all()]

    try:
        scores = scoring.score_game(game, turns)
    except Exception:
        current_app.logger.exception(f"[finish] game={game_id} scoring failed")
        return None

    try:
        def attach(g):
            g.scores = scores
        run_game_transaction(game_id, attach)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"[finish] game={game_id} could not store scores")

    game = db.session.get(Game, game_id)
    humans = [p for p in (game.players or []) if is_human(p)]
    summary = {
        'game_id': game_id,
        'created_at': clock.to_iso(clock.now()),
        'summary': scores.get('summary') or 'Game finished',
        'max_turns': game.max_turns,
        'turns': [
            {
                'order': t['order'],
                'player_name': t['player_name'],
                'text': t['text'],
                'prompt_used': t['prompt_used'],
            }
            for t in turns
        ],
        'scores': scores.get('players'),
    }

    for player in humans:
        try:
            save_game_for_user(player['id'], dict(summary, player_name=player.get('name')))
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[finish] game={game_id} history save failed user={player['id']}")

    if scores.get('unscored'):
        current_app.logger.info(f"[finish] game={game_id} unscored, leaderboard untouched")
    else:
        try:
            update_leaderboard(scores, humans, summary)
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[finish] game={game_id} leaderboard update failed")

    current_app.logger.info(f"[finish] game={game_id} scored players={len(scores.get('players') or {})}")
    return scores


def save_game_for_user(user_id, summary: dict) -> None:
    """Keep the user's five most recent games, evicting the oldest."""
    if not user_id:
        return
    existing = (SavedGame.query.filter_by(user_id=user_id)
                .order_by(SavedGame.created_at.asc(), SavedGame.id.asc()).all())
    saved = next((s for s in existing if s.game_id == summary['game_id']), None)
    if saved is None:
        overflow = len(existing) - (HISTORY_SIZE - 1)
        for old in existing[:max(0, overflow)]:
            db.session.delete(old)
        saved = SavedGame(user_id=user_id, game_id=summary['game_id'])
        db.session.add(saved)
    saved.player_name = summary.get('player_name')
    saved.created_at = clock.parse_iso(summary.get('created_at')) or clock.now()
    saved.summary = summary.get('summary')
    saved.max_turns = summary.get('max_turns')
    saved.turns = list(summary.get('turns') or [])
    saved.scores = summary.get('scores')
    db.session.commit()


def aggregate_score(metrics: dict) -> float:
    values = []
    for key in scoring.METRICS:
        try:
            values.append(float(metrics.get(key) or 0))
        except (TypeError, ValueError):
            values.append(0.0)
    return sum(values) / len(values)


def update_leaderboard(scores: dict, players: List[dict], summary: Optional[dict] = None) -> None:
    id_by_name = {p.get('name'): p.get('id') for p in players}
    for name, metrics in (scores.get('players') or {}).items():
        user_id = id_by_name.get(name)
        if not user_id or not isinstance(metrics, dict):
            continue
        total = aggregate_score(metrics)

        def upsert(entry, name=name, total=total):
            best = entry.top_score or 0
            entry.username = name
            entry.last_score = total
            entry.top_score = max(best, total)
            entry.games_played = (entry.games_played or 0) + 1
            entry.last_updated = clock.now()
            if total > best and summary:
                entry.top_game_summary = summary

        run_transaction(
            LeaderboardEntry, user_id, upsert,
            create=lambda user_id=user_id: LeaderboardEntry(user_id=user_id, username='', top_score=0,
                                                            last_score=0, games_played=0),
        )
    trim_leaderboard()


def trim_leaderboard(size: int = LEADERBOARD_SIZE) -> int:
    excess = (LeaderboardEntry.query
              .order_by(LeaderboardEntry.top_score.desc(), LeaderboardEntry.last_updated.asc())
              .offset(size).all())
    for entry in excess:
        db.session.delete(entry)
    db.session.commit()
    return len(excess)


def _is_test_user(entry: LeaderboardEntry, test_ids) -> bool:
    if entry.user_id in test_ids:
        return True
    if str(entry.user_id).startswith('test-user'):
        return True
    return bool(re.match(r'^test[\s_-]?', (entry.username or '').strip(), re.IGNORECASE))


def get_leaderboard(limit=20) -> List[dict]:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = 20
    limit = max(1, min(limit, 50))
    test_ids = set(current_app.config.get('TEST_USER_IDS') or [])

    rows = (LeaderboardEntry.query
            .order_by(LeaderboardEntry.top_score.desc(), LeaderboardEntry.last_updated.asc())
            .limit(limit + len(test_ids)).all())
    board = []
    for entry in rows:
        if _is_test_user(entry, test_ids):
            continue
        board.append(dict(entry.to_dict(), rank=len(board) + 1))
        if len(board) >= limit:
            break
    return board


def get_user_history(user_id, limit=HISTORY_SIZE) -> List[dict]:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = HISTORY_SIZE
    limit = max(1, min(limit, HISTORY_SIZE))
    rows = (SavedGame.query.filter_by(user_id=str(user_id))
            .order_by(SavedGame.created_at.desc(), SavedGame.id.desc())
            .limit(limit).all())
    return [r.to_dict() for r in rows]
