"""Evaluation and score keeping.

Scores are only ever changed by the store itself: increments run as a single
``UPDATE score SET score = score + :delta`` and are applied only by the
caller that wins the ``is_correct IS NULL`` transition of a submission, so
re-evaluating a submission can never count twice.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from quizroom import db
from quizroom.errors import NotFoundError, PreconditionError
from quizroom.models import Player, Question, Room, Score, Submission
from quizroom.services.game_modes import (
    EVALUATION_AUTOMATIC,
    EVALUATION_RANKING,
    decode_placement,
    get_game_mode,
)
from quizroom.services.quizzes import ordered_questions


def _now():
    return datetime.now(timezone.utc)


def ensure_score_row(room_id, player_id) -> None:
    if Score.query.filter_by(room_id=room_id, player_id=player_id).first():
        return
    db.session.add(Score(room_id=room_id, player_id=player_id, score=0))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()


def increment_score(room_id, player_id, delta: int) -> None:
    """Atomic ``score += delta``; the score row must exist. Caller commits."""
    Score.query.filter_by(room_id=room_id, player_id=player_id).update(
        {Score.score: Score.score + delta, Score.updated_at: _now()},
        synchronize_session=False,
    )


def upsert_score(room_id, player_id, new_score: int) -> None:
    """Replace the stored score for (room, player)."""
    values = {Score.score: int(new_score), Score.updated_at: _now()}
    updated = Score.query.filter_by(room_id=room_id, player_id=player_id).update(
        values, synchronize_session=False
    )
    if not updated:
        db.session.add(Score(room_id=room_id, player_id=player_id, score=int(new_score)))
    try:
        db.session.commit()
    except IntegrityError:
        # Someone created the row first; overwrite it
        db.session.rollback()
        Score.query.filter_by(room_id=room_id, player_id=player_id).update(
            values, synchronize_session=False
        )
        db.session.commit()


def load_ranking(room: Room) -> List[dict]:
    """Scores for every player in the room, best first, ties by join order."""
    scores = {s.player_id: s for s in Score.query.filter_by(room_id=room.id).all()}
    rows = []
    for player in Player.query.filter_by(room_id=room.id).order_by(Player.id.asc()).all():
        score = scores.get(player.id)
        rows.append({
            'player_id': player.id,
            'nickname': player.nickname,
            'score': score.score if score else 0,
            'updated_at': score.updated_at.isoformat() if score and score.updated_at else None,
        })
    rows.sort(key=lambda r: -r['score'])
    for idx, row in enumerate(rows):
        row['rank'] = idx + 1
    return rows


def _apply_verdict(submission: Submission, verdict: bool) -> bool:
    changed = Submission.query.filter(
        Submission.id == submission.id, Submission.is_correct.is_(None)
    ).update({Submission.is_correct: bool(verdict)}, synchronize_session=False)
    if changed and verdict:
        increment_score(submission.room_id, submission.player_id, 1)
    return bool(changed)


def evaluate_submission(room: Room, submission_id, is_correct) -> Tuple[Submission, bool]:
    """Host verdict for one submission. Returns ``(submission, applied)``.

    ``applied`` is False when the submission already had a verdict; the
    stored verdict and the score are left untouched in that case.
    """
    mode = get_game_mode(room.quiz.quiz_type)
    if mode.evaluation_policy == EVALUATION_RANKING:
        raise PreconditionError('Placements are scored when the ranking is revealed')
    if mode.evaluation_policy == EVALUATION_AUTOMATIC:
        raise PreconditionError(f'{mode.label} answers are checked against the model answer')
    submission = Submission.query.filter_by(id=submission_id, room_id=room.id).first()
    if not submission:
        raise NotFoundError('Submission not found')

    ensure_score_row(room.id, submission.player_id)
    applied = _apply_verdict(submission, bool(is_correct))
    db.session.commit()
    db.session.refresh(submission)
    current_app.logger.info(
        f"[evaluate] room={room.id} submission={submission.id} verdict={submission.is_correct} applied={applied}"
    )
    return submission, applied


def auto_evaluate_pending(room: Room, question: Optional[Question] = None) -> int:
    """Evaluate unevaluated submissions in automatic modes.

    With ``question`` only that question is checked; otherwise every pending
    submission of the room is, including late answers to earlier questions.
    """
    mode = get_game_mode(room.quiz.quiz_type)
    if mode.evaluation_policy != EVALUATION_AUTOMATIC:
        return 0
    query = Submission.query.filter(Submission.room_id == room.id, Submission.is_correct.is_(None))
    if question is not None:
        query = query.filter(Submission.question_id == question.id)
    pending = query.order_by(Submission.id.asc()).all()
    if not pending:
        return 0
    questions = {q.id: q for q in ordered_questions(room.quiz_id)}
    for player_id in {s.player_id for s in pending}:
        ensure_score_row(room.id, player_id)
    applied = 0
    for sub in pending:
        target = questions.get(sub.question_id)
        if target is not None and _apply_verdict(sub, mode.evaluate(target, sub.answer_text)):
            applied += 1
    db.session.commit()
    current_app.logger.info(
        f"[auto-eval] room={room.id} question={question.id if question else 'all'} evaluated={applied}"
    )
    return applied


def placement_summary(room: Room, persist_scores: bool = False) -> dict:
    """Compare every player's placements with the canonical order.

    Computed from the full ledger each time. With ``persist_scores`` the
    per-player totals replace the stored scores.
    """
    mode = get_game_mode(room.quiz.quiz_type)
    items = ordered_questions(room.quiz_id)
    item_ids = [item.id for item in items]
    chosen = {}
    if item_ids:
        for sub in Submission.query.filter(
            Submission.room_id == room.id, Submission.question_id.in_(item_ids)
        ).all():
            chosen.setdefault(sub.player_id, {})[sub.question_id] = decode_placement(sub.answer_text)

    scored = getattr(mode, 'scored', False)
    players = []
    for player in Player.query.filter_by(room_id=room.id).order_by(Player.id.asc()).all():
        mine = chosen.get(player.id, {})
        details = []
        total = 0
        for item in items:
            correct = item.position + 1
            position = mine.get(item.id)
            points = mode.points_for(position, correct) if scored else None
            total += points or 0
            details.append({
                'question_id': item.id,
                'text': item.text,
                'correct_position': correct,
                'chosen_position': position,
                'points': points,
            })
        players.append({
            'player_id': player.id,
            'nickname': player.nickname,
            'placed': sum(1 for d in details if d['chosen_position'] is not None),
            'score': total if scored else None,
            'placements': details,
        })
        if scored and persist_scores:
            upsert_score(room.id, player.id, total)

    if scored:
        players.sort(key=lambda p: -p['score'])
    return {
        'scored': scored,
        'items': [{'question_id': i.id, 'text': i.text, 'correct_position': i.position + 1} for i in items],
        'players': players,
    }
