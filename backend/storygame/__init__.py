from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=flask_app.config.get('CORS_ORIGINS') or '*')

    from storygame.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/game')

    from storygame.api.leaderboard import leaderboard
    flask_app.register_blueprint(leaderboard, url_prefix='/api/leaderboard')

    @flask_app.route('/')
    def index():
        return jsonify({'message': 'StoryGame API is running'})

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates every table."""
        from storygame import models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('reset-games')
    def reset_games_command():
        """Deletes every game and its turns."""
        from storygame.services.games.cleanup import reset_games
        with flask_app.app_context():
            removed = reset_games()
            print(f'Deleted {removed} games.')

    @click.command('cleanup-lobbies')
    @click.option('--before', default=None, help='Only close lobbies created before this ISO timestamp.')
    def cleanup_lobbies_command(before):
        """Closes every waiting lobby."""
        from storygame.services.games.cleanup import cleanup_waiting_lobbies
        with flask_app.app_context():
            result = cleanup_waiting_lobbies(before=before)
            if result.get('error'):
                raise click.ClickException(result['error'])
            print(f"Closed {result['cleared']} waiting lobbies.")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(reset_games_command)
    flask_app.cli.add_command(cleanup_lobbies_command)

    return flask_app
