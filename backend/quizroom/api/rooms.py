from flask import Blueprint, current_app, jsonify, request
from quizroom.models import STATUS_FINISHED
from quizroom.services import ledger, rooms as room_service, scoring
from quizroom.services.game_modes import (
    EVALUATION_RANKING,
    PLAYER_FLOW_PLACEMENT,
    get_game_mode,
)
from quizroom.services.room_controller import RoomController

rooms = Blueprint('rooms', __name__)

HOST_TOKEN_HEADER = 'X-Host-Token'
PLAYER_TOKEN_HEADER = 'X-Player-Token'


def _host_controller(room_code):
    room = room_service.load_room_by_code(room_code)
    room_service.authenticate_host(room, request.headers.get(HOST_TOKEN_HEADER))
    return RoomController(room)


def _player_context(room_code):
    room = room_service.load_room_by_code(room_code)
    player = room_service.authenticate_player(room, request.headers.get(PLAYER_TOKEN_HEADER))
    return room, player


def _outcome_payload(outcome):
    return {
        'room': outcome.room.to_dict(),
        'confirmation_required': outcome.confirmation_required,
        'pending_player_ids': list(outcome.pending_player_ids),
        'summary': outcome.summary,
    }


def _poll_intervals():
    cfg = current_app.config
    return {
        'player': float(cfg.get('PLAYER_POLL_INTERVAL_SEC', 2)),
        'host': float(cfg.get('HOST_POLL_INTERVAL_SEC', 3)),
    }


@rooms.route('', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    room = room_service.create_room(data.get('quiz_id'))
    payload = room.to_dict(include_host_token=True)
    payload['poll_intervals'] = _poll_intervals()
    return jsonify(payload), 201


@rooms.route('/<string:room_code>', methods=['GET'])
def get_room(room_code):
    room = room_service.load_room_by_code(room_code)
    payload = room.to_dict()
    payload['mode'] = get_game_mode(room.quiz.quiz_type).to_dict()
    payload['poll_intervals'] = _poll_intervals()
    return jsonify(payload)


@rooms.route('/<string:room_code>/join', methods=['POST'])
def join_room(room_code):
    data = request.get_json(silent=True) or {}
    player = room_service.join_room(room_code, data.get('nickname'))
    payload = player.to_dict(include_token=True)
    payload['room_code'] = player.room.room_code
    return jsonify(payload), 201


# ---- host ----

@rooms.route('/<string:room_code>/players', methods=['GET'])
def list_players(room_code):
    controller = _host_controller(room_code)
    return jsonify([p.to_dict() for p in controller.players()])


@rooms.route('/<string:room_code>/start', methods=['POST'])
def start_room(room_code):
    controller = _host_controller(room_code)
    return jsonify(controller.start().to_dict())


@rooms.route('/<string:room_code>/advance', methods=['POST'])
def advance_room(room_code):
    data = request.get_json(silent=True) or {}
    controller = _host_controller(room_code)
    outcome = controller.advance(confirm=bool(data.get('confirm')))
    return jsonify(_outcome_payload(outcome))


@rooms.route('/<string:room_code>/retreat', methods=['POST'])
def retreat_room(room_code):
    controller = _host_controller(room_code)
    return jsonify(controller.retreat().to_dict())


@rooms.route('/<string:room_code>/finish', methods=['POST'])
def finish_room(room_code):
    controller = _host_controller(room_code)
    return jsonify(controller.finish().to_dict())


@rooms.route('/<string:room_code>/reveal', methods=['POST'])
def reveal_ranking(room_code):
    data = request.get_json(silent=True) or {}
    controller = _host_controller(room_code)
    outcome = controller.reveal(confirm=bool(data.get('confirm')))
    return jsonify(_outcome_payload(outcome))


@rooms.route('/<string:room_code>/host/submissions', methods=['GET'])
def host_submissions(room_code):
    """Host poll. In automatic modes this also evaluates new submissions."""
    controller = _host_controller(room_code)
    return jsonify(controller.host_queue())


@rooms.route('/<string:room_code>/submissions/<int:submission_id>/evaluate', methods=['POST'])
def evaluate_submission(room_code, submission_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('is_correct'), bool):
        return jsonify({'error': 'is_correct must be true or false', 'code': 'validation_error'}), 400
    controller = _host_controller(room_code)
    submission, applied = scoring.evaluate_submission(controller.room, submission_id, data['is_correct'])
    return jsonify({'submission': submission.to_dict(), 'applied': applied})


# ---- player ----

@rooms.route('/<string:room_code>/submissions', methods=['POST'])
def submit_answer(room_code):
    data = request.get_json(silent=True) or {}
    room, player = _player_context(room_code)
    raw = data.get('chosen_position') if 'chosen_position' in data else data.get('answer')
    submission, created = ledger.submit(room, data.get('question_id'), player, raw)
    return jsonify({'submission': submission.to_dict(), 'created': created}), 201 if created else 200


@rooms.route('/<string:room_code>/me', methods=['GET'])
def player_state(room_code):
    """Player poll: room state plus the player's own submission for the
    current question, read fresh from the ledger."""
    room, player = _player_context(room_code)
    submission = None
    if room.current_question_id:
        submission = ledger.find_submission(room.id, room.current_question_id, player.id)
    payload = {
        'room': room.to_dict(),
        'player': player.to_dict(),
        'submission': submission.to_dict() if submission else None,
    }
    mode = get_game_mode(room.quiz.quiz_type)
    if mode.player_flow == PLAYER_FLOW_PLACEMENT:
        payload['placements'] = {
            str(qid): pos for qid, pos in ledger.placements_for_player(room.id, player.id).items()
        }
    return jsonify(payload)


@rooms.route('/<string:room_code>/me/placements', methods=['GET'])
def player_placements(room_code):
    room, player = _player_context(room_code)
    mode = get_game_mode(room.quiz.quiz_type)
    if mode.player_flow != PLAYER_FLOW_PLACEMENT:
        return jsonify({'error': 'This game has no placements', 'code': 'precondition_failed'}), 409
    placements = ledger.placements_for_player(room.id, player.id)
    return jsonify({
        'placements': {str(qid): pos for qid, pos in placements.items()},
        'free_slots': [slot for slot in mode.slots if slot not in set(placements.values())],
    })


# ---- public ----

@rooms.route('/<string:room_code>/scores', methods=['GET'])
def get_scores(room_code):
    room = room_service.load_room_by_code(room_code)
    return jsonify(scoring.load_ranking(room))


@rooms.route('/<string:room_code>/summary', methods=['GET'])
def get_summary(room_code):
    """End-of-game view over the whole ledger, including late answers."""
    room = room_service.load_room_by_code(room_code)
    if room.status != STATUS_FINISHED:
        return jsonify({'error': 'Summary is available once the room has finished', 'code': 'precondition_failed'}), 409
    scoring.auto_evaluate_pending(room)
    payload = {
        'room': room.to_dict(),
        'ranking': scoring.load_ranking(room),
        'submissions': [s.to_dict() for s in ledger.submissions_for_room(room.id)],
    }
    if get_game_mode(room.quiz.quiz_type).evaluation_policy == EVALUATION_RANKING:
        payload['placements'] = scoring.placement_summary(room)
    return jsonify(payload)
