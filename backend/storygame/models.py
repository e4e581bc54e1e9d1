from storygame import db
from storygame.services.games.clock import to_iso
import uuid


def generate_id():
    return str(uuid.uuid4())


class Game(db.Model):
    """One play session. Nested collections live in JSON columns so the row
    behaves like a single document; ``version`` guards every write."""
    __tablename__ = 'game'
    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    host_id = db.Column(db.String(128), nullable=False, index=True)
    host_name = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='waiting', index=True)  # waiting, active, timeout, finished
    mode = db.Column(db.String(16), nullable=False, default='multi', index=True)  # multi, single, rapid
    created_at = db.Column(db.DateTime, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, nullable=True)
    ended_reason = db.Column(db.String(64), nullable=True)
    # Story
    initial_prompt = db.Column(db.Text, nullable=False)
    guide_prompt = db.Column(db.Text, nullable=True)
    story_so_far = db.Column(db.Text, nullable=False, default='')
    last_turn = db.Column(db.JSON, nullable=True)
    # Turn bookkeeping
    turns_count = db.Column(db.Integer, nullable=False, default=0)
    max_turns = db.Column(db.Integer, nullable=True)
    turn_duration_seconds = db.Column(db.Integer, nullable=False, default=60)
    turn_deadline = db.Column(db.DateTime, nullable=True)
    current_player_index = db.Column(db.Integer, nullable=False, default=0)
    current_player = db.Column(db.String(64), nullable=True)
    current_player_id = db.Column(db.String(128), nullable=True)
    # Membership: [{'id', 'name'}] in turn order; [{'player_id', 'player_name', 'requested_at'}]
    players = db.Column(db.JSON, nullable=False, default=list)
    max_players = db.Column(db.Integer, nullable=False, default=3)
    requires_approval = db.Column(db.Boolean, nullable=False, default=False)
    pending_requests = db.Column(db.JSON, nullable=False, default=list)
    scores = db.Column(db.JSON, nullable=True)
    version = db.Column(db.Integer, nullable=False)

    turns = db.relationship('Turn', backref='game', lazy='dynamic', order_by='Turn.order')

    __mapper_args__ = {'version_id_col': version}

    @property
    def visible_prompt(self):
        """Prompt shown to players: the opening scene until the first turn lands."""
        if self.guide_prompt is not None:
            return self.guide_prompt
        return None if self.turns_count else self.initial_prompt

    def to_dict(self):
        # story_so_far stays server-side
        return {
            'id': self.id,
            'host_id': self.host_id,
            'host_name': self.host_name,
            'status': self.status,
            'mode': self.mode,
            'created_at': to_iso(self.created_at),
            'updated_at': to_iso(self.updated_at),
            'ended_reason': self.ended_reason,
            'initial_prompt': self.initial_prompt,
            'guide_prompt': self.visible_prompt,
            'last_turn': self.last_turn,
            'turns_count': self.turns_count,
            'max_turns': self.max_turns,
            'turn_duration_seconds': self.turn_duration_seconds,
            'turn_deadline': to_iso(self.turn_deadline),
            'current_player_index': self.current_player_index,
            'current_player': self.current_player,
            'current_player_id': self.current_player_id,
            'players': list(self.players or []),
            'max_players': self.max_players,
            'requires_approval': self.requires_approval,
            'pending_requests': list(self.pending_requests or []),
            'scores': self.scores,
        }

    def to_lobby_dict(self):
        return {
            'id': self.id,
            'host_id': self.host_id,
            'host_name': self.host_name,
            'initial_prompt': self.initial_prompt,
            'player_count': len(self.players or []),
            'max_players': self.max_players,
            'max_turns': self.max_turns,
            'turn_duration_seconds': self.turn_duration_seconds,
            'requires_approval': self.requires_approval,
            'pending_count': len(self.pending_requests or []),
            'created_at': to_iso(self.created_at),
            'updated_at': to_iso(self.updated_at),
        }


class Turn(db.Model):
    __tablename__ = 'turn'
    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    game_id = db.Column(db.String(36), db.ForeignKey('game.id'), nullable=False, index=True)
    order = db.Column('turn_order', db.Integer, nullable=False)
    player_id = db.Column(db.String(128), nullable=False)
    player_name = db.Column(db.String(64), nullable=False)
    text = db.Column(db.Text, nullable=False)
    prompt_used = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    __table_args__ = (db.UniqueConstraint('game_id', 'turn_order', name='uq_turn_game_order'),)

    def to_dict(self):
        return {
            'id': self.id,
            'order': self.order,
            'player_id': self.player_id,
            'player_name': self.player_name,
            'text': self.text,
            'prompt_used': self.prompt_used,
            'created_at': to_iso(self.created_at),
        }


class LeaderboardEntry(db.Model):
    __tablename__ = 'leaderboard_entry'
    user_id = db.Column(db.String(128), primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    last_score = db.Column(db.Float, nullable=False, default=0)
    top_score = db.Column(db.Float, nullable=False, default=0, index=True)
    games_played = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime, nullable=True)
    top_game_summary = db.Column(db.JSON, nullable=True)
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'username': self.username or 'Unknown',
            'top_score': float(self.top_score or 0),
            'last_score': float(self.last_score or 0),
            'games_played': int(self.games_played or 0),
            'last_updated': to_iso(self.last_updated),
            'top_game_summary': self.top_game_summary,
        }


class SavedGame(db.Model):
    """A finished game kept in one player's personal history."""
    __tablename__ = 'saved_game'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    game_id = db.Column(db.String(36), nullable=False)
    player_name = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)
    summary = db.Column(db.Text, nullable=True)
    max_turns = db.Column(db.Integer, nullable=True)
    turns = db.Column(db.JSON, nullable=False, default=list)
    scores = db.Column(db.JSON, nullable=True)

    __table_args__ = (db.UniqueConstraint('user_id', 'game_id', name='uq_saved_game_user_game'),)

    def to_dict(self):
        return {
            'game_id': self.game_id,
            'player_name': self.player_name,
            'created_at': to_iso(self.created_at),
            'summary': self.summary,
            'max_turns': self.max_turns,
            'turns': list(self.turns or []),
            'scores': self.scores,
        }
