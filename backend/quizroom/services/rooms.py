import hmac
import re
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from quizroom import db
from quizroom.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    TransientIOError,
    ValidationError,
)
from quizroom.models import (
    Player,
    Quiz,
    Room,
    Score,
    STATUS_FINISHED,
    generate_room_code,
)
from quizroom.services.game_modes import get_game_mode

NICKNAME_MAX_LENGTH = 28


def normalize_room_code(code: Optional[str]) -> str:
    if not code:
        return ''
    return re.sub(r'[^A-Z0-9]', '', str(code).upper())[:6]


def sanitize_nickname(nickname: Optional[str]) -> str:
    collapsed = re.sub(r'\s+', ' ', str(nickname or '')).strip()
    if not collapsed:
        raise ValidationError('Nickname is required')
    return collapsed[:NICKNAME_MAX_LENGTH]


def load_room_by_code(code: Optional[str]) -> Room:
    normalized = normalize_room_code(code)
    room = Room.query.filter_by(room_code=normalized).first() if normalized else None
    if not room:
        raise NotFoundError('Room not found')
    return room


def create_room(quiz_id) -> Room:
    """Open a new waiting room for ``quiz_id`` under a fresh room code."""
    quiz = db.session.get(Quiz, quiz_id) if quiz_id is not None else None
    if not quiz:
        raise NotFoundError('Quiz not found')
    get_game_mode(quiz.quiz_type)

    attempts = int(current_app.config.get('ROOM_CODE_ATTEMPTS', 24))
    for _ in range(attempts):
        code = generate_room_code()
        if Room.query.filter_by(room_code=code).first():
            continue
        room = Room(quiz_id=quiz.id, room_code=code)
        db.session.add(room)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race for the same code
            db.session.rollback()
            continue
        current_app.logger.info(f"[room-create] room={room.id} code={room.room_code} quiz={quiz.id}")
        return room
    raise TransientIOError('Unable to create a room code right now.')


def join_room(code: Optional[str], nickname: Optional[str]) -> Player:
    """Append a player to the roster; also opens the player's score row."""
    room = load_room_by_code(code)
    if room.status == STATUS_FINISHED:
        raise PreconditionError('This room has already finished')
    player = Player(room_id=room.id, nickname=sanitize_nickname(nickname))
    db.session.add(player)
    db.session.flush()
    db.session.add(Score(room_id=room.id, player_id=player.id, score=0))
    db.session.commit()
    current_app.logger.info(f"[join] room={room.id} player={player.id} nickname={player.nickname!r}")
    return player


def authenticate_host(room: Room, token: Optional[str]) -> None:
    if not token or not hmac.compare_digest(room.host_token, str(token)):
        raise AuthorizationError('Host token missing or invalid for this room')


def authenticate_player(room: Room, token: Optional[str]) -> Player:
    player = Player.query.filter_by(room_id=room.id, player_token=str(token)).first() if token else None
    if not player:
        raise AuthorizationError('Player token missing or invalid for this room')
    return player
