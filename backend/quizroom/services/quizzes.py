"""Quiz authoring: the thin CRUD layer the room core reads from."""

from typing import List

from flask import current_app

from quizroom import db
from quizroom.errors import NotFoundError, PreconditionError, ValidationError
from quizroom.models import Question, Quiz, Room, STATUS_WAITING
from quizroom.services.game_modes import get_game_mode


def ordered_questions(quiz_id) -> List[Question]:
    return Question.query.filter_by(quiz_id=quiz_id).order_by(Question.position.asc()).all()


def load_quiz(quiz_id) -> Quiz:
    quiz = db.session.get(Quiz, quiz_id) if quiz_id is not None else None
    if not quiz:
        raise NotFoundError('Quiz not found')
    return quiz


def create_quiz(title, quiz_type='qa') -> Quiz:
    title = str(title or '').strip()
    if not title:
        raise ValidationError('Title is required')
    get_game_mode(quiz_type)
    quiz = Quiz(title=title, quiz_type=quiz_type)
    db.session.add(quiz)
    db.session.commit()
    return quiz


def rename_quiz(quiz: Quiz, title) -> Quiz:
    title = str(title or '').strip()
    if not title:
        raise ValidationError('Title is required')
    quiz.title = title
    db.session.commit()
    return quiz


def is_frozen(quiz: Quiz) -> bool:
    """A quiz is frozen once any of its rooms has left the waiting state."""
    return Room.query.filter(Room.quiz_id == quiz.id, Room.status != STATUS_WAITING).first() is not None


def replace_questions(quiz: Quiz, questions) -> List[Question]:
    """Validate ``questions`` with the quiz's game mode and store them in order.

    Blank entries are dropped and positions are renumbered densely from 0.
    """
    if not isinstance(questions, list) or not all(isinstance(q, dict) for q in questions):
        raise ValidationError('questions must be a list of objects')
    if is_frozen(quiz):
        raise PreconditionError('Questions cannot change once a room of this quiz has started')

    valid = get_game_mode(quiz.quiz_type).validate(questions)

    Question.query.filter_by(quiz_id=quiz.id).delete()
    rows = []
    for idx, q in enumerate(valid):
        row = Question(
            quiz_id=quiz.id,
            position=idx,
            text=str(q.get('text') or '').strip(),
            answer=(str(q.get('answer')).strip() or None) if q.get('answer') is not None else None,
            image_path=(str(q.get('image_path')).strip() or None) if q.get('image_path') else None,
        )
        db.session.add(row)
        rows.append(row)
    db.session.commit()
    db.session.expire(quiz)
    current_app.logger.info(f"[questions] quiz={quiz.id} saved={len(rows)} dropped={len(questions) - len(rows)}")
    return rows
