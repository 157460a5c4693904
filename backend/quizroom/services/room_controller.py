"""Host-side room state machine: waiting -> active -> finished.

Every transition is a single conditional UPDATE on the room row that names
the state it expects to leave. If another request moved the room first the
update matches nothing and the transition fails instead of overwriting it.
"""

from typing import List, NamedTuple, Optional, Tuple

from flask import current_app

from quizroom import db
from quizroom.errors import PreconditionError
from quizroom.models import (
    Player,
    Question,
    Room,
    Submission,
    STATUS_ACTIVE,
    STATUS_FINISHED,
    STATUS_WAITING,
)
from quizroom.services.game_modes import EVALUATION_RANKING, get_game_mode
from quizroom.services import ledger, scoring
from quizroom.services.quizzes import ordered_questions


class AdvanceOutcome(NamedTuple):
    room: Room
    confirmation_required: bool = False
    pending_player_ids: Tuple[int, ...] = ()
    summary: Optional[dict] = None


class RoomController:

    def __init__(self, room: Room):
        self.room = room
        self.mode = get_game_mode(room.quiz.quiz_type)

    # ---- queries ----

    def questions(self) -> List[Question]:
        return ordered_questions(self.room.quiz_id)

    def players(self) -> List[Player]:
        return Player.query.filter_by(room_id=self.room.id).order_by(Player.id.asc()).all()

    def _cursor_index(self, questions: List[Question]) -> int:
        for idx, q in enumerate(questions):
            if q.id == self.room.current_question_id:
                return idx
        raise PreconditionError('Current question no longer belongs to this quiz')

    def pending_player_ids(self) -> List[int]:
        """Players who have not answered the current question (or, when
        revealing a ranking, have not placed every item)."""
        players = self.players()
        if self.mode.evaluation_policy == EVALUATION_RANKING and self._at_last_question():
            item_ids = [q.id for q in self.questions()]
            progress = ledger.progress_by_player(self.room.id, item_ids)
            return [p.id for p in players if progress.get(p.id, 0) < len(item_ids)]
        if not self.room.current_question_id:
            return []
        answered = {
            s.player_id for s in Submission.query.filter_by(
                room_id=self.room.id, question_id=self.room.current_question_id
            ).all()
        }
        return [p.id for p in players if p.id not in answered]

    def _at_last_question(self) -> bool:
        questions = self.questions()
        return bool(questions) and questions[-1].id == self.room.current_question_id

    # ---- transitions ----

    def _require_status(self, status: str, action: str) -> None:
        if self.room.status != status:
            raise PreconditionError(f'Cannot {action} a room that is {self.room.status}')

    def _settle_automatic(self) -> None:
        # verdicts for the question being left are written before the cursor moves
        scoring.auto_evaluate_pending(self.room)

    def _transition(self, expected_status: str, **values) -> Room:
        criteria = {'id': self.room.id, 'status': expected_status}
        if expected_status == STATUS_ACTIVE:
            criteria['current_question_id'] = self.room.current_question_id
        updated = Room.query.filter_by(**criteria).update(values, synchronize_session=False)
        if not updated:
            db.session.rollback()
            raise PreconditionError('Room changed in the meantime; reload and try again')
        db.session.commit()
        db.session.refresh(self.room)
        return self.room

    def start(self) -> Room:
        self._require_status(STATUS_WAITING, 'start')
        players = self.players()
        min_players = int(current_app.config.get('MIN_PLAYERS', 1))
        if len(players) < max(1, min_players):
            raise PreconditionError(f'At least {max(1, min_players)} player(s) must join before starting')
        questions = self.questions()
        if not questions:
            raise PreconditionError('This quiz has no questions')
        self._transition(STATUS_WAITING, status=STATUS_ACTIVE, current_question_id=questions[0].id)
        current_app.logger.info(
            f"[start] room={self.room.id} players={len(players)} questions={len(questions)} cursor={questions[0].id}"
        )
        return self.room

    def advance(self, confirm: bool = False) -> AdvanceOutcome:
        """Move the cursor forward, or finish after the last question.

        Unless ``confirm`` is set, the room does not move while players are
        still missing an answer; the outcome then lists who is missing.
        """
        self._require_status(STATUS_ACTIVE, 'advance')
        self._settle_automatic()
        pending = self.pending_player_ids()
        if pending and not confirm:
            return AdvanceOutcome(self.room, confirmation_required=True, pending_player_ids=tuple(pending))

        questions = self.questions()
        idx = self._cursor_index(questions)
        if idx + 1 < len(questions):
            next_q = questions[idx + 1]
            self._transition(STATUS_ACTIVE, current_question_id=next_q.id)
            current_app.logger.info(f"[advance] room={self.room.id} cursor={questions[idx].id} -> {next_q.id}")
            return AdvanceOutcome(self.room, pending_player_ids=tuple(pending))

        if self.mode.evaluation_policy == EVALUATION_RANKING:
            summary = self._reveal()
            return AdvanceOutcome(self.room, pending_player_ids=tuple(pending), summary=summary)

        self._transition(STATUS_ACTIVE, status=STATUS_FINISHED)
        current_app.logger.info(f"[finish] room={self.room.id} after last question")
        return AdvanceOutcome(self.room, pending_player_ids=tuple(pending))

    def retreat(self) -> Room:
        self._require_status(STATUS_ACTIVE, 'go back in')
        self._settle_automatic()
        if not self.mode.allows_retreat:
            raise PreconditionError(f'{self.mode.label} does not allow going back')
        questions = self.questions()
        idx = self._cursor_index(questions)
        if idx == 0:
            raise PreconditionError('Already at the first question')
        prev_q = questions[idx - 1]
        self._transition(STATUS_ACTIVE, current_question_id=prev_q.id)
        current_app.logger.info(f"[retreat] room={self.room.id} cursor={questions[idx].id} -> {prev_q.id}")
        return self.room

    def finish(self) -> Room:
        if self.room.status == STATUS_FINISHED:
            return self.room
        self._require_status(STATUS_ACTIVE, 'finish')
        self._settle_automatic()
        self._transition(STATUS_ACTIVE, status=STATUS_FINISHED)
        current_app.logger.info(f"[finish] room={self.room.id} ended by host")
        return self.room

    def reveal(self, confirm: bool = False) -> AdvanceOutcome:
        """Ranking modes: show the canonical order, score if enabled, finish."""
        if self.mode.evaluation_policy != EVALUATION_RANKING:
            raise PreconditionError('Only ranking games have a reveal')
        if self.room.status == STATUS_FINISHED:
            return AdvanceOutcome(self.room, summary=scoring.placement_summary(self.room))
        self._require_status(STATUS_ACTIVE, 'reveal')
        if not self._at_last_question():
            raise PreconditionError('Reveal every item before showing the ranking')
        pending = self.pending_player_ids()
        if pending and not confirm:
            return AdvanceOutcome(self.room, confirmation_required=True, pending_player_ids=tuple(pending))
        return AdvanceOutcome(self.room, pending_player_ids=tuple(pending), summary=self._reveal())

    def _reveal(self) -> dict:
        summary = scoring.placement_summary(self.room, persist_scores=True)
        self._transition(STATUS_ACTIVE, status=STATUS_FINISHED)
        current_app.logger.info(
            f"[reveal] room={self.room.id} scored={summary['scored']} players={len(summary['players'])}"
        )
        return summary

    # ---- host poll ----

    def host_queue(self) -> dict:
        """Submissions for the current question as the host sees them.

        For automatic modes this read evaluates pending submissions first.
        """
        question = self.room.current_question if self.room.status == STATUS_ACTIVE else None
        evaluated = scoring.auto_evaluate_pending(self.room)
        submissions = ledger.submissions_for_question(self.room.id, question.id) if question else []
        players = self.players()
        payload = {
            'room': self.room.to_dict(),
            'question': question.to_dict() if question else None,
            'submissions': [s.to_dict() for s in submissions],
            'players': [p.to_dict() for p in players],
            'pending_count': max(0, len(players) - len(submissions)) if question else 0,
            'auto_evaluated': evaluated,
        }
        if self.mode.evaluation_policy == EVALUATION_RANKING:
            item_ids = [q.id for q in self.questions()]
            progress = ledger.progress_by_player(self.room.id, item_ids)
            payload['progress'] = {str(p.id): progress.get(p.id, 0) for p in players}
            payload['submissions'] = []
        return payload
