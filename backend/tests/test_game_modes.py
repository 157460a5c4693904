from types import SimpleNamespace

import pytest

from quizroom.errors import ValidationError
from quizroom.services.game_modes import (
    EVALUATION_AUTOMATIC,
    EVALUATION_MANUAL,
    EVALUATION_RANKING,
    GAME_MODES,
    BlindTop5Mode,
    IdentifyImageMode,
    decode_placement,
    encode_placement,
    get_game_mode,
    normalize_answer,
)


def test_registry_is_closed():
    assert get_game_mode('qa').evaluation_policy == EVALUATION_MANUAL
    assert get_game_mode('true_false').evaluation_policy == EVALUATION_AUTOMATIC
    assert get_game_mode('blind_top5').evaluation_policy == EVALUATION_RANKING
    assert get_game_mode('blind_top5_unscored').scored is False
    with pytest.raises(ValidationError):
        get_game_mode('trivia_deluxe')
    with pytest.raises(ValidationError):
        get_game_mode(None)


def test_only_blind_top5_forbids_going_back():
    no_retreat = {key for key, mode in GAME_MODES.items() if not mode.allows_retreat}
    assert no_retreat == {'blind_top5', 'blind_top5_unscored'}


def test_qa_validation():
    mode = get_game_mode('qa')
    with pytest.raises(ValidationError) as exc:
        mode.validate([])
    assert 'At least one question' in exc.value.message
    with pytest.raises(ValidationError):
        mode.validate([{'text': 'Q', 'answer': '  '}, {'text': 'Q2', 'answer': 'A'}])
    valid = mode.validate([{'text': 'Q', 'answer': 'A'}, {'text': ' ', 'answer': ' '}])
    assert valid == [{'text': 'Q', 'answer': 'A'}]


def test_identify_image_requires_image_and_answer():
    mode = get_game_mode('identify_image')
    with pytest.raises(ValidationError):
        mode.validate([{'text': 'Who?', 'answer': 'Ada'}])
    with pytest.raises(ValidationError) as exc:
        mode.validate([
            {'text': 'Who?', 'answer': 'Ada', 'image_path': 'a.jpg'},
            {'text': 'What?', 'image_path': 'b.jpg'},
        ])
    assert exc.value.message == '1 question(s) without a model answer.'
    assert len(mode.validate([{'text': 'Who?', 'answer': 'Ada', 'image_path': 'a.jpg'}])) == 1

    relaxed = IdentifyImageMode(require_answer=False)
    assert len(relaxed.validate([{'text': 'What?', 'image_path': 'b.jpg'}])) == 1


def test_blind_top5_needs_exactly_five_items():
    mode = get_game_mode('blind_top5')
    items = [{'text': name} for name in ('A', 'B', 'C', 'D', 'E')]
    assert len(mode.validate(items)) == 5
    with pytest.raises(ValidationError):
        mode.validate(items[:4])
    with pytest.raises(ValidationError):
        mode.validate(items + [{'text': 'F'}])


def test_normalize_answer():
    assert normalize_answer('  Wahr ') == 'wahr'
    assert normalize_answer('STRASSE') == normalize_answer('straße')
    assert normalize_answer(None) == ''


@pytest.mark.parametrize('given,expected', [
    ('Wahr', True),
    (' wahr ', True),
    ('WAHR', True),
    ('Lüge', False),
    ('wahrheit', False),
])
def test_true_false_evaluation(given, expected):
    mode = get_game_mode('true_false')
    question = SimpleNamespace(answer='Wahr')
    assert mode.evaluate(question, given) is expected


def test_manual_modes_do_not_evaluate():
    question = SimpleNamespace(answer='Paris')
    assert get_game_mode('qa').evaluate(question, 'Paris') is None
    assert get_game_mode('identify_image').evaluate(question, 'Paris') is None


def test_prepare_text_answer():
    mode = get_game_mode('qa')
    assert mode.prepare_answer('  Paris ') == 'Paris'
    with pytest.raises(ValidationError):
        mode.prepare_answer('   ')
    with pytest.raises(ValidationError):
        mode.prepare_answer(None)


def test_prepare_placement():
    mode = get_game_mode('blind_top5')
    assert decode_placement(mode.prepare_answer(3)) == 3
    assert decode_placement(mode.prepare_answer({'chosen_position': '4'})) == 4
    for bad in (0, 6, 'first', None):
        with pytest.raises(ValidationError):
            mode.prepare_answer(bad)
    with pytest.raises(ValidationError):
        mode.prepare_answer(2, taken_positions=[1, 2])


def test_decode_placement_ignores_garbage():
    assert decode_placement(encode_placement(5)) == 5
    assert decode_placement('Paris') is None
    assert decode_placement('{"other": 1}') is None
    assert decode_placement(None) is None


@pytest.mark.parametrize('chosen,correct,points', [
    (1, 1, 2),
    (2, 1, 1),
    (1, 2, 1),
    (3, 1, 0),
    (5, 1, 0),
    (None, 3, 0),
])
def test_points_for(chosen, correct, points):
    assert BlindTop5Mode.points_for(chosen, correct) == points


def test_mode_descriptions():
    data = get_game_mode('blind_top5').to_dict()
    assert data['item_count'] == 5
    assert data['scored'] is True
    assert data['allows_retreat'] is False
    assert get_game_mode('true_false').to_dict()['player_flow'] == 'choice'
