"""Closed registry of game modes.

A game mode bundles everything that differs between quiz types: how the
authored questions are validated, how the host may navigate, what a player
submits and how submissions are evaluated. Modes are looked up by
``Quiz.quiz_type``; there is no dynamic loading.
"""

import json
from typing import Dict, List, Optional

from quizroom.errors import ValidationError

EVALUATION_MANUAL = 'manual'
EVALUATION_AUTOMATIC = 'automatic'
EVALUATION_RANKING = 'ranking'

PLAYER_FLOW_TEXT = 'text'
PLAYER_FLOW_CHOICE = 'choice'
PLAYER_FLOW_PLACEMENT = 'placement'


def normalize_answer(value) -> str:
    return str(value or '').strip().casefold()


def _text(question: dict, field: str) -> str:
    return str(question.get(field) or '').strip()


class GameMode:
    key = ''
    label = ''
    player_flow = PLAYER_FLOW_TEXT
    evaluation_policy = EVALUATION_MANUAL
    allows_retreat = True

    def valid_questions(self, questions: List[dict]) -> List[dict]:
        return [q for q in questions if _text(q, 'text') and _text(q, 'answer')]

    def validation_error(self, questions: List[dict]) -> Optional[str]:
        if not self.valid_questions(questions):
            return 'At least one question with a model answer is required.'
        missing = [q for q in questions if _text(q, 'text') and not _text(q, 'answer')]
        if missing:
            return f'{len(missing)} question(s) without a model answer.'
        return None

    def validate(self, questions: List[dict]) -> List[dict]:
        """Return the questions worth saving or raise ``ValidationError``."""
        message = self.validation_error(questions)
        if message:
            raise ValidationError(message)
        return self.valid_questions(questions)

    def prepare_answer(self, raw, taken_positions=()) -> str:
        answer = str(raw if raw is not None else '').strip()
        if not answer:
            raise ValidationError('An answer is required')
        return answer

    def evaluate(self, question, answer_text: str) -> Optional[bool]:
        """Automatic verdict for a submission; ``None`` means a human decides."""
        return None

    def to_dict(self) -> dict:
        return {
            'key': self.key,
            'label': self.label,
            'player_flow': self.player_flow,
            'evaluation_policy': self.evaluation_policy,
            'allows_retreat': self.allows_retreat,
        }


class QAMode(GameMode):
    key = 'qa'
    label = 'Classic questions & answers'


class TrueFalseMode(GameMode):
    key = 'true_false'
    label = 'True or false'
    player_flow = PLAYER_FLOW_CHOICE
    evaluation_policy = EVALUATION_AUTOMATIC

    def evaluate(self, question, answer_text: str) -> Optional[bool]:
        return normalize_answer(answer_text) == normalize_answer(question.answer)


class IdentifyImageMode(GameMode):
    key = 'identify_image'
    label = 'Who or what is this?'

    def __init__(self, require_answer: bool = True):
        self.require_answer = require_answer

    def valid_questions(self, questions):
        return [
            q for q in questions
            if _text(q, 'image_path') and (_text(q, 'answer') or not self.require_answer)
        ]

    def validation_error(self, questions):
        if not self.valid_questions(questions):
            if self.require_answer:
                return 'At least one question with an image and a model answer is required.'
            return 'At least one question with an image is required.'
        if self.require_answer:
            missing = [q for q in questions if _text(q, 'image_path') and not _text(q, 'answer')]
            if missing:
                return f'{len(missing)} question(s) without a model answer.'
        return None


class BlindTop5Mode(GameMode):
    """Five items revealed one by one, each placed into a free slot 1..5."""

    label = 'Blind Top 5'
    player_flow = PLAYER_FLOW_PLACEMENT
    evaluation_policy = EVALUATION_RANKING
    allows_retreat = False
    ITEM_COUNT = 5

    def __init__(self, key: str = 'blind_top5', scored: bool = True, label: Optional[str] = None):
        self.key = key
        self.scored = scored
        if label:
            self.label = label

    @property
    def slots(self):
        return range(1, self.ITEM_COUNT + 1)

    def valid_questions(self, questions):
        return [q for q in questions if _text(q, 'text')]

    def validation_error(self, questions):
        if len(self.valid_questions(questions)) != self.ITEM_COUNT:
            return f'Blind Top 5 needs exactly {self.ITEM_COUNT} items.'
        return None

    def prepare_answer(self, raw, taken_positions=()):
        if isinstance(raw, dict):
            raw = raw.get('chosen_position')
        try:
            position = int(raw)
        except (TypeError, ValueError):
            raise ValidationError('chosen_position must be a slot number')
        if position not in self.slots:
            raise ValidationError(f'chosen_position must be between 1 and {self.ITEM_COUNT}')
        if position in set(taken_positions):
            raise ValidationError(f'Slot {position} is already taken')
        return encode_placement(position)

    @staticmethod
    def points_for(chosen: Optional[int], correct: int) -> int:
        if chosen is None:
            return 0
        if chosen == correct:
            return 2
        if abs(chosen - correct) == 1:
            return 1
        return 0

    def to_dict(self):
        data = super().to_dict()
        data['scored'] = self.scored
        data['item_count'] = self.ITEM_COUNT
        return data


def encode_placement(position: int) -> str:
    return json.dumps({'chosen_position': position})


def decode_placement(answer_text: str) -> Optional[int]:
    try:
        payload = json.loads(answer_text)
        return int(payload['chosen_position'])
    except (json.JSONDecodeError, TypeError, KeyError, ValueError):
        return None


GAME_MODES: Dict[str, GameMode] = {
    mode.key: mode for mode in (
        QAMode(),
        TrueFalseMode(),
        IdentifyImageMode(),
        BlindTop5Mode(),
        BlindTop5Mode(key='blind_top5_unscored', scored=False, label='Blind Top 5 (host-led, no points)'),
    )
}


def get_game_mode(quiz_type: str) -> GameMode:
    mode = GAME_MODES.get(quiz_type or '')
    if mode is None:
        raise ValidationError(f'Unknown quiz type: {quiz_type!r}')
    return mode
