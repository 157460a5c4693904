from quizroom import db
from datetime import datetime, timezone
import random
import secrets

ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'

STATUS_WAITING = 'waiting'
STATUS_ACTIVE = 'active'
STATUS_FINISHED = 'finished'
STATUS_ORDER = (STATUS_WAITING, STATUS_ACTIVE, STATUS_FINISHED)


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def generate_room_code(length=6):
    """Random code without visually ambiguous characters (0/O, 1/I)."""
    return ''.join(random.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def generate_token():
    return secrets.token_urlsafe(24)


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    quiz_type = db.Column(db.String(32), nullable=False, default='qa')
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    questions = db.relationship(
        'Question', back_populates='quiz', order_by='Question.position', lazy='select'
    )

    def to_dict(self, include_count=False):
        data = {
            'id': self.id,
            'title': self.title,
            'quiz_type': self.quiz_type,
            'created_at': _iso(self.created_at),
        }
        if include_count:
            data['question_count'] = len(self.questions)
        return data


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    text = db.Column(db.Text, nullable=False, default='')
    answer = db.Column(db.Text, nullable=True)
    image_path = db.Column(db.String(500), nullable=True)
    quiz = db.relationship('Quiz', back_populates='questions')

    __table_args__ = (
        db.UniqueConstraint('quiz_id', 'position', name='uq_question_quiz_position'),
    )

    def to_dict(self, include_answer=True):
        data = {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'position': self.position,
            'text': self.text,
            'image_path': self.image_path,
        }
        if include_answer:
            data['answer'] = self.answer
        return data


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    room_code = db.Column(db.String(6), unique=True, index=True, nullable=False)
    host_token = db.Column(db.String(64), nullable=False, default=generate_token)
    status = db.Column(db.String(16), nullable=False, default=STATUS_WAITING)
    current_question_id = db.Column(
        db.Integer, db.ForeignKey('question.id', name='fk_room_current_question_id'), nullable=True
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    quiz = db.relationship('Quiz')
    players = db.relationship('Player', back_populates='room', order_by='Player.id')

    @property
    def current_question(self):
        if self.current_question_id:
            return db.session.get(Question, self.current_question_id)
        return None

    def to_dict(self, include_host_token=False):
        current = self.current_question
        data = {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'room_code': self.room_code,
            'status': self.status,
            'current_question_id': self.current_question_id,
            'current_question': current.to_dict(include_answer=False) if current else None,
            'quiz': {'title': self.quiz.title, 'quiz_type': self.quiz.quiz_type} if self.quiz else None,
            'player_count': len(self.players),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_host_token:
            data['host_token'] = self.host_token
        return data


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    nickname = db.Column(db.String(64), nullable=False)
    player_token = db.Column(db.String(64), nullable=False, default=generate_token)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    room = db.relationship('Room', back_populates='players')

    def to_dict(self, include_token=False):
        data = {
            'id': self.id,
            'room_id': self.room_id,
            'nickname': self.nickname,
            'created_at': _iso(self.created_at),
        }
        if include_token:
            data['player_token'] = self.player_token
        return data


class Submission(db.Model):
    __tablename__ = 'submission'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    answer_text = db.Column(db.Text, nullable=False, default='')
    # chosen slot for placement answers, NULL otherwise
    slot = db.Column(db.Integer, nullable=True)
    is_correct = db.Column(db.Boolean, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    player = db.relationship('Player')

    __table_args__ = (
        db.UniqueConstraint('room_id', 'question_id', 'player_id', name='uq_submission_room_question_player'),
        db.UniqueConstraint('room_id', 'player_id', 'slot', name='uq_submission_room_player_slot'),
        db.Index('ix_submission_room_question', 'room_id', 'question_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'question_id': self.question_id,
            'player_id': self.player_id,
            'nickname': self.player.nickname if self.player else None,
            'answer_text': self.answer_text,
            'is_correct': self.is_correct,
            'created_at': _iso(self.created_at),
        }


class Score(db.Model):
    __tablename__ = 'score'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    player = db.relationship('Player')

    __table_args__ = (
        db.UniqueConstraint('room_id', 'player_id', name='uq_score_room_player'),
    )

    def to_dict(self):
        return {
            'room_id': self.room_id,
            'player_id': self.player_id,
            'nickname': self.player.nickname if self.player else None,
            'score': self.score,
            'updated_at': _iso(self.updated_at),
        }
