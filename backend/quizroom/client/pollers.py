"""Host and player pollers.

There is no push channel: each device re-reads the room on a fixed interval
and diffs the answer against what it already knows. A poller is a scoped
task; whoever creates it must ``stop()`` it (or use it as a context manager)
when the view it feeds goes away, otherwise it keeps reading and, for the
host in automatic modes, keeps triggering evaluation.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from quizroom.errors import AuthorizationError, NotFoundError, PreconditionError, QuizRoomError
from quizroom.services.game_modes import BlindTop5Mode, decode_placement

logger = logging.getLogger(__name__)

PHASE_WAITING = 'waiting'
PHASE_IDLE = 'idle'
PHASE_SUBMITTED = 'submitted'
PHASE_EVALUATED = 'evaluated'
PHASE_PLACED = 'placed'
PHASE_FINISHED = 'finished'


class PollingTask:
    """Runs ``tick()`` every ``interval`` seconds on a background thread.

    A failed tick is logged and kept in ``last_error``; the next tick is the
    retry. Authorization and not-found errors end the task because the view
    can no longer recover on its own.
    """

    FATAL_ERRORS = (AuthorizationError, NotFoundError)

    def __init__(self, interval: float):
        self.interval = float(interval)
        self.last_error: Optional[Exception] = None
        self.tick_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> 'PollingTask':
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name=type(self).__name__, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.run_tick()
            self._stop_event.wait(self.interval)

    def run_tick(self) -> bool:
        """One guarded poll. Returns True when the tick succeeded."""
        if self._stop_event.is_set():
            return False
        try:
            with self._lock:
                self.tick()
        except self.FATAL_ERRORS as exc:
            logger.warning('%s stopping: %s', type(self).__name__, exc)
            self.last_error = exc
            self._stop_event.set()
            return False
        except QuizRoomError as exc:
            logger.warning('%s tick failed: %s', type(self).__name__, exc)
            self.last_error = exc
            return False
        except Exception as exc:
            logger.exception('%s tick crashed', type(self).__name__)
            self.last_error = exc
            return False
        self.tick_count += 1
        self.last_error = None
        return True

    def tick(self) -> None:
        raise NotImplementedError


class PlayerPoller(PollingTask):
    """Tracks the room from one player's device.

    Local per-question state (``answer``, ``submitted``, ``result``) is reset
    whenever the cursor moves and rebuilt from the ledger, so a reload never
    trusts a stale "already submitted" flag.
    """

    def __init__(self, api, room_code: str, player_token: str, interval: float = 2.0,
                 on_change: Optional[Callable[['PlayerPoller'], None]] = None):
        super().__init__(interval)
        self.api = api
        self.room_code = room_code
        self.player_token = player_token
        self.on_change = on_change
        self.status: Optional[str] = None
        self.question_id: Optional[int] = None
        self.question: Optional[dict] = None
        self.is_placement = False
        self.placements: Dict[int, int] = {}
        self._reset_question()

    def _reset_question(self) -> None:
        self.answer = ''
        self.submitted = False
        self.result: Optional[bool] = None
        self.submission: Optional[dict] = None

    def _apply_submission(self, submission: Optional[dict]) -> None:
        if not submission:
            return
        self.submission = submission
        self.submitted = True
        if not self.is_placement:
            self.answer = submission.get('answer_text') or ''
        if submission.get('is_correct') is not None:
            self.result = bool(submission['is_correct'])

    @property
    def phase(self) -> str:
        if self.status == 'finished':
            return PHASE_FINISHED
        if self.status != 'active' or self.question_id is None:
            return PHASE_WAITING
        if not self.submitted:
            return PHASE_IDLE
        if self.is_placement:
            return PHASE_PLACED
        return PHASE_EVALUATED if self.result is not None else PHASE_SUBMITTED

    @property
    def free_slots(self) -> List[int]:
        used = set(self.placements.values())
        return [slot for slot in range(1, BlindTop5Mode.ITEM_COUNT + 1) if slot not in used]

    def tick(self) -> None:
        state = self.api.player_state(self.room_code, self.player_token)
        room = state['room']
        before = (self.status, self.question_id, self.phase)

        self.status = room['status']
        if 'placements' in state:
            self.is_placement = True
            self.placements = {int(k): int(v) for k, v in (state.get('placements') or {}).items()}

        if room.get('current_question_id') != self.question_id:
            self.question_id = room.get('current_question_id')
            self.question = room.get('current_question')
            self._reset_question()
            self._apply_submission(state.get('submission'))
        elif self.result is None:
            self._apply_submission(state.get('submission'))

        if self.on_change and before != (self.status, self.question_id, self.phase):
            self.on_change(self)

    def submit(self, answer) -> dict:
        """Send an answer (or a slot number) for the question shown right now.

        The question id is captured before the request goes out; if the
        cursor moves meanwhile the answer still counts for the old question
        and local state for the new one is left alone.
        """
        with self._lock:
            question_id = self.question_id
            if self.status != 'active' or question_id is None:
                raise PreconditionError('No question to answer right now')
            if self.submitted and self.submission:
                return self.submission
        payload = self.api.submit(self.room_code, self.player_token, question_id, answer)
        submission = payload['submission']
        with self._lock:
            if self.question_id == question_id:
                self._apply_submission(submission)
                if self.is_placement:
                    position = decode_placement(submission.get('answer_text'))
                    if position is not None:
                        self.placements[question_id] = position
        if not payload.get('created'):
            logger.info('submission for question %s already existed; using stored answer', question_id)
        return submission


class HostPoller(PollingTask):
    """Watches the current question's submissions from the host device.

    Keeps a display buffer of submissions for the current question only; the
    buffer is cleared when the cursor moves, the ledger never is.
    """

    def __init__(self, api, room_code: str, host_token: str, interval: float = 3.0,
                 on_submission: Optional[Callable[[dict], None]] = None,
                 on_change: Optional[Callable[['HostPoller'], None]] = None):
        super().__init__(interval)
        self.api = api
        self.room_code = room_code
        self.host_token = host_token
        self.on_submission = on_submission
        self.on_change = on_change
        self.status: Optional[str] = None
        self.question_id: Optional[int] = None
        self.players: List[dict] = []
        self.progress: Dict[int, int] = {}
        self.submissions: Dict[int, dict] = {}
        self.pending_count = 0
        self.summary: Optional[dict] = None

    def _apply_room(self, room: dict) -> None:
        self.status = room['status']
        if room.get('current_question_id') != self.question_id:
            self.question_id = room.get('current_question_id')
            self.submissions.clear()
            self.pending_count = len(self.players)

    @property
    def all_submitted(self) -> bool:
        """Every player answered (or placed) the current question.

        Read from the server's pending count, which also covers ranking modes
        where individual submissions stay hidden until the reveal.
        """
        return bool(self.players) and self.question_id is not None and self.pending_count == 0

    def tick(self) -> None:
        data = self.api.host_submissions(self.room_code, self.host_token)
        before = (self.status, self.question_id)
        self._apply_room(data['room'])
        self.players = data.get('players') or []
        self.pending_count = int(data.get('pending_count') or 0)
        self.progress = {int(k): int(v) for k, v in (data.get('progress') or {}).items()}

        fresh = []
        for sub in data.get('submissions') or []:
            if sub['question_id'] != self.question_id:
                continue
            if sub['id'] not in self.submissions:
                fresh.append(sub)
            self.submissions[sub['id']] = sub
        if self.on_submission:
            for sub in fresh:
                self.on_submission(sub)
        if self.on_change and (fresh or before != (self.status, self.question_id)):
            self.on_change(self)

    # ---- host actions ----

    def start_room(self) -> dict:
        room = self.api.start(self.room_code, self.host_token)
        with self._lock:
            self._apply_room(room)
        return room

    def advance(self, confirm: bool = False) -> dict:
        """Advance the room. When players are still missing the result has
        ``confirmation_required`` set and nothing moved; call again with
        ``confirm=True`` to skip them."""
        result = self.api.advance(self.room_code, self.host_token, confirm=confirm)
        if not result.get('confirmation_required'):
            with self._lock:
                self._apply_room(result['room'])
                if result.get('summary'):
                    self.summary = result['summary']
        return result

    def retreat(self) -> dict:
        room = self.api.retreat(self.room_code, self.host_token)
        with self._lock:
            self._apply_room(room)
        return room

    def finish(self) -> dict:
        room = self.api.finish(self.room_code, self.host_token)
        with self._lock:
            self._apply_room(room)
        return room

    def reveal(self, confirm: bool = False) -> dict:
        result = self.api.reveal(self.room_code, self.host_token, confirm=confirm)
        if not result.get('confirmation_required'):
            with self._lock:
                self._apply_room(result['room'])
                self.summary = result.get('summary')
        return result

    def evaluate(self, submission_id: int, is_correct: bool) -> dict:
        payload = self.api.evaluate(self.room_code, self.host_token, submission_id, is_correct)
        submission = payload['submission']
        with self._lock:
            if submission['id'] in self.submissions:
                self.submissions[submission['id']] = submission
        return submission
