from flask import Blueprint, jsonify, request
from storygame.services.games.completion import get_leaderboard

leaderboard = Blueprint('leaderboard', __name__)


@leaderboard.route('', methods=['GET'])
def list_leaderboard():
    return jsonify({'leaderboard': get_leaderboard(limit=request.args.get('limit', 20))})
