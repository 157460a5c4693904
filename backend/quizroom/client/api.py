"""HTTP client for the room API, used by host and player devices."""

import logging
from typing import Optional

import requests

from quizroom.errors import (
    ERRORS_BY_CODE,
    DuplicateSubmissionError,
    QuizRoomError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

HOST_TOKEN_HEADER = 'X-Host-Token'
PLAYER_TOKEN_HEADER = 'X-Player-Token'


def _error_from_response(status_code: int, payload: dict) -> QuizRoomError:
    code = str(payload.get('code') or '')
    message = str(payload.get('error') or f'HTTP {status_code}')
    if code == DuplicateSubmissionError.code:
        return DuplicateSubmissionError(payload.get('submission'), message)
    error_class = ERRORS_BY_CODE.get(code)
    if error_class is not None:
        return error_class(message, status_code)
    return QuizRoomError(message, status_code)


class RoomApiClient:
    """Thin wrapper over the JSON API.

    Transport failures and 5xx responses become ``TransientIOError``; other
    error responses are mapped back onto the shared error taxonomy.
    """

    def __init__(self, base_url: str, session=None, timeout: float = 10):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, json: Optional[dict] = None,
                 host_token: Optional[str] = None, player_token: Optional[str] = None) -> dict:
        headers = {}
        if host_token:
            headers[HOST_TOKEN_HEADER] = host_token
        if player_token:
            headers[PLAYER_TOKEN_HEADER] = player_token
        url = f'{self.base_url}{path}'
        try:
            resp = self.session.request(method, url, json=json, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientIOError(f'{method} {path} failed: {exc}') from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if resp.status_code >= 400:
            error_payload = payload if isinstance(payload, dict) else {}
            if resp.status_code >= 500:
                raise TransientIOError(str(error_payload.get('error') or f'HTTP {resp.status_code}'))
            raise _error_from_response(resp.status_code, error_payload)
        return payload

    # ---- quizzes ----

    def create_quiz(self, title: str, quiz_type: str = 'qa') -> dict:
        return self._request('POST', '/api/quizzes', json={'title': title, 'quiz_type': quiz_type})

    def save_questions(self, quiz_id: int, questions: list) -> list:
        return self._request('PUT', f'/api/quizzes/{quiz_id}/questions', json={'questions': questions})

    def load_questions(self, quiz_id: int) -> list:
        return self._request('GET', f'/api/quizzes/{quiz_id}/questions')

    # ---- rooms ----

    def create_room(self, quiz_id: int) -> dict:
        return self._request('POST', '/api/rooms', json={'quiz_id': quiz_id})

    def load_room(self, room_code: str) -> dict:
        return self._request('GET', f'/api/rooms/{room_code}')

    def join(self, room_code: str, nickname: str) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/join', json={'nickname': nickname})

    def load_scores(self, room_code: str) -> list:
        return self._request('GET', f'/api/rooms/{room_code}/scores')

    def load_summary(self, room_code: str) -> dict:
        return self._request('GET', f'/api/rooms/{room_code}/summary')

    # ---- host ----

    def start(self, room_code: str, host_token: str) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/start', host_token=host_token)

    def advance(self, room_code: str, host_token: str, confirm: bool = False) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/advance', json={'confirm': confirm},
                             host_token=host_token)

    def retreat(self, room_code: str, host_token: str) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/retreat', host_token=host_token)

    def finish(self, room_code: str, host_token: str) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/finish', host_token=host_token)

    def reveal(self, room_code: str, host_token: str, confirm: bool = False) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/reveal', json={'confirm': confirm},
                             host_token=host_token)

    def host_submissions(self, room_code: str, host_token: str) -> dict:
        return self._request('GET', f'/api/rooms/{room_code}/host/submissions', host_token=host_token)

    def evaluate(self, room_code: str, host_token: str, submission_id: int, is_correct: bool) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/submissions/{submission_id}/evaluate',
                             json={'is_correct': bool(is_correct)}, host_token=host_token)

    # ---- player ----

    def submit(self, room_code: str, player_token: str, question_id: int, answer) -> dict:
        return self._request('POST', f'/api/rooms/{room_code}/submissions',
                             json={'question_id': question_id, 'answer': answer}, player_token=player_token)

    def player_state(self, room_code: str, player_token: str) -> dict:
        return self._request('GET', f'/api/rooms/{room_code}/me', player_token=player_token)
