"""Submission ledger: one answer per (room, question, player).

The store's unique constraint is the only arbiter of "first write wins".
Losing that race is normal: the loser re-reads the winning row and carries
on as if its own write had landed.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from quizroom import db
from quizroom.errors import DuplicateSubmissionError, NotFoundError, PreconditionError, ValidationError
from quizroom.models import Player, Question, Room, Submission, STATUS_FINISHED, STATUS_WAITING
from quizroom.services.game_modes import (
    PLAYER_FLOW_PLACEMENT,
    decode_placement,
    get_game_mode,
)
from quizroom.services import scoring


def find_submission(room_id, question_id, player_id) -> Optional[Submission]:
    return Submission.query.filter_by(
        room_id=room_id, question_id=question_id, player_id=player_id
    ).first()


def submissions_for_question(room_id, question_id) -> List[Submission]:
    return (
        Submission.query.filter_by(room_id=room_id, question_id=question_id)
        .order_by(Submission.created_at.asc(), Submission.id.asc())
        .all()
    )


def submissions_for_player(room_id, player_id) -> List[Submission]:
    return Submission.query.filter_by(room_id=room_id, player_id=player_id).order_by(Submission.id.asc()).all()


def submissions_for_room(room_id) -> List[Submission]:
    return Submission.query.filter_by(room_id=room_id).order_by(Submission.id.asc()).all()


def placements_for_player(room_id, player_id) -> Dict[int, int]:
    """question_id -> chosen slot for a ranking-mode player."""
    placements = {}
    for sub in submissions_for_player(room_id, player_id):
        position = decode_placement(sub.answer_text)
        if position is not None:
            placements[sub.question_id] = position
    return placements


def progress_by_player(room_id, question_ids) -> Dict[int, int]:
    counts = defaultdict(int)
    if not question_ids:
        return counts
    rows = Submission.query.filter(
        Submission.room_id == room_id, Submission.question_id.in_(list(question_ids))
    ).all()
    for sub in rows:
        counts[sub.player_id] += 1
    return counts


def _check_question(room: Room, question_id) -> Question:
    question = db.session.get(Question, question_id) if question_id is not None else None
    if not question or question.quiz_id != room.quiz_id:
        raise NotFoundError('Question not found in this room')
    current = room.current_question
    if current is None or question.position > current.position:
        raise PreconditionError('This question has not been revealed yet')
    return question


def _accepts_answers(room: Room, mode) -> bool:
    if room.status == STATUS_WAITING:
        return False
    # a revealed ranking is final; other modes still take answers that were in flight
    return not (room.status == STATUS_FINISHED and mode.player_flow == PLAYER_FLOW_PLACEMENT)


def record(room: Room, question_id, player: Player, raw_answer) -> Submission:
    """Insert a submission or raise ``DuplicateSubmissionError`` with the stored row.

    ``question_id`` is the one the player saw when answering; it is never
    swapped for the room's current question. Answers that arrive after the
    room finished are still recorded against that question.
    """
    mode = get_game_mode(room.quiz.quiz_type)
    if not _accepts_answers(room, mode):
        raise PreconditionError('Room is not accepting answers')
    question = _check_question(room, question_id)

    taken = ()
    slot = None
    if mode.player_flow == PLAYER_FLOW_PLACEMENT:
        placements = placements_for_player(room.id, player.id)
        if question.id in placements:
            existing = find_submission(room.id, question.id, player.id)
            raise DuplicateSubmissionError(existing)
        taken = placements.values()
    answer_text = mode.prepare_answer(raw_answer, taken)
    if mode.player_flow == PLAYER_FLOW_PLACEMENT:
        slot = decode_placement(answer_text)

    submission = Submission(
        room_id=room.id,
        question_id=question.id,
        player_id=player.id,
        answer_text=answer_text,
        slot=slot,
    )
    db.session.add(submission)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = find_submission(room.id, question.id, player.id)
        if existing is None:
            if slot is not None:
                # another item of this player claimed the slot first
                current_app.logger.info(f"[slot-taken] room={room.id} player={player.id} slot={slot}")
                raise ValidationError(f'Slot {slot} is already taken')
            raise
        current_app.logger.info(
            f"[duplicate] room={room.id} question={question.id} player={player.id} existing={existing.id}"
        )
        raise DuplicateSubmissionError(existing)
    return submission


def submit(room: Room, question_id, player: Player, raw_answer) -> Tuple[Submission, bool]:
    """Record an answer; returns ``(submission, created)``.

    A duplicate is reconciled to the stored submission with ``created=False``.
    Nobody polls a finished room, so a late answer there is evaluated at once
    in automatic modes.
    """
    try:
        submission = record(room, question_id, player, raw_answer)
    except DuplicateSubmissionError as exc:
        return exc.existing, False
    if room.status == STATUS_FINISHED:
        scoring.auto_evaluate_pending(room, db.session.get(Question, submission.question_id))
        db.session.refresh(submission)
    return submission, True
