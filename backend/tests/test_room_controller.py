import pytest

from quizroom import db
from quizroom.errors import PreconditionError
from quizroom.models import STATUS_ORDER, Room
from quizroom.services import ledger
from quizroom.services.room_controller import AdvanceOutcome, RoomController
from quizroom.services.rooms import authenticate_player, load_room_by_code


def _controller(code):
    return RoomController(load_room_by_code(code))


def test_status_only_moves_forward(make_room):
    room = make_room('qa', nicknames=('Alice',))
    controller = _controller(room.code)
    seen = [controller.room.status]

    controller.start()
    seen.append(controller.room.status)
    with pytest.raises(PreconditionError):
        controller.start()

    controller.advance(confirm=True)
    controller.advance(confirm=True)
    seen.append(controller.room.status)
    controller.advance(confirm=True)
    seen.append(controller.room.status)

    assert seen == ['waiting', 'active', 'active', 'finished']
    ranks = [STATUS_ORDER.index(s) for s in seen]
    assert ranks == sorted(ranks)

    for action in (controller.start, controller.advance, controller.retreat):
        with pytest.raises(PreconditionError):
            action()
    # finishing twice is harmless
    assert controller.finish().status == 'finished'


def test_finish_requires_active_room(make_room):
    room = make_room('qa', nicknames=('Alice',))
    with pytest.raises(PreconditionError):
        _controller(room.code).finish()


def test_start_points_cursor_at_first_question(make_room):
    room = make_room('qa', nicknames=('Alice',))
    controller = _controller(room.code)
    controller.start()
    assert controller.room.current_question_id == room.question_ids[0]
    assert controller.room.current_question.position == 0


def test_start_respects_min_players(flask_app, make_room):
    flask_app.config['MIN_PLAYERS'] = 2
    room = make_room('qa', nicknames=('Alice',))
    with pytest.raises(PreconditionError) as exc:
        _controller(room.code).start()
    assert 'At least 2' in exc.value.message


def test_advance_waits_for_confirmation(make_room):
    room = make_room('qa')
    controller = _controller(room.code)
    controller.start()

    outcome = controller.advance()
    assert outcome.confirmation_required is True
    assert len(outcome.pending_player_ids) == 2
    assert controller.room.current_question_id == room.question_ids[0]

    outcome = controller.advance(confirm=True)
    assert outcome.confirmation_required is False
    assert controller.room.current_question_id == room.question_ids[1]


def test_retreat_rules(make_room):
    room = make_room('qa', nicknames=('Alice',))
    controller = _controller(room.code)
    controller.start()
    with pytest.raises(PreconditionError):
        controller.retreat()

    controller.advance(confirm=True)
    controller.retreat()
    assert controller.room.current_question_id == room.question_ids[0]


def test_stale_controller_cannot_overwrite_newer_state(make_room):
    room = make_room('qa', nicknames=('Alice',))
    first = _controller(room.code)
    first.start()
    stale_cursor = first.room.current_question_id

    # a second host tab moves the room on
    other = _controller(room.code)
    other.advance(confirm=True)

    # the first tab still believes the cursor sits on the first question
    first.room.current_question_id = stale_cursor
    db.session.expunge(first.room)
    with pytest.raises(PreconditionError):
        first._transition('active', current_question_id=room.question_ids[2])

    fresh = Room.query.filter_by(room_code=room.code).first()
    assert fresh.current_question_id == room.question_ids[1]


def test_late_answer_stays_out_of_current_queue(make_room):
    room = make_room('qa', nicknames=('Alice',))
    q1, q2, _ = room.question_ids
    controller = _controller(room.code)
    controller.start()
    controller.advance(confirm=True)

    # Alice answered q1 on her device right before the host moved on
    rroom = load_room_by_code(room.code)
    alice = authenticate_player(rroom, room.players[0]['player_token'])
    submission, created = ledger.submit(rroom, q1, alice, 'Paris')
    assert created is True
    assert submission.question_id == q1

    queue = _controller(room.code).host_queue()
    assert queue['question']['id'] == q2
    assert queue['submissions'] == []
    assert queue['pending_count'] == 1

    # still in the ledger for the end-of-game view
    assert [s.question_id for s in ledger.submissions_for_room(rroom.id)] == [q1]


def test_blind_top5_reveal_waits_for_all_placements(make_room):
    room = make_room('blind_top5', nicknames=('Alice', 'Bob'))
    controller = _controller(room.code)
    controller.start()
    rroom = controller.room
    alice = authenticate_player(rroom, room.players[0]['player_token'])
    for slot, item in enumerate(room.question_ids, start=1):
        ledger.submit(rroom, item, alice, slot)
        if slot < 5:
            controller.advance(confirm=True)

    outcome = controller.reveal()
    assert outcome.confirmation_required is True
    assert outcome.pending_player_ids == (room.players[1]['id'],)
    assert controller.room.status == 'active'

    outcome = controller.reveal(confirm=True)
    assert controller.room.status == 'finished'
    alice_row = next(p for p in outcome.summary['players'] if p['nickname'] == 'Alice')
    bob_row = next(p for p in outcome.summary['players'] if p['nickname'] == 'Bob')
    assert alice_row['score'] == 10
    assert bob_row['score'] == 0
    assert bob_row['placed'] == 0


def test_reveal_is_ranking_only(make_room):
    room = make_room('qa', nicknames=('Alice',))
    controller = _controller(room.code)
    controller.start()
    with pytest.raises(PreconditionError):
        controller.reveal()


def test_outcomes_do_not_share_pending_ids(make_room):
    room = make_room('qa', nicknames=('Alice',))
    controller = _controller(room.code)
    first = AdvanceOutcome(controller.room)
    second = AdvanceOutcome(controller.room)
    assert first.pending_player_ids == ()
    assert isinstance(second.pending_player_ids, tuple)
