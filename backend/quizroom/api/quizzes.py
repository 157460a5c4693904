from flask import Blueprint, jsonify, request
from quizroom.models import Quiz
from quizroom.services import quizzes as quiz_service
from quizroom.services.game_modes import GAME_MODES

quizzes = Blueprint('quizzes', __name__)


@quizzes.route('/modes', methods=['GET'])
def list_modes():
    return jsonify([mode.to_dict() for mode in GAME_MODES.values()])


@quizzes.route('', methods=['GET'])
def list_quizzes():
    rows = Quiz.query.order_by(Quiz.created_at.desc(), Quiz.id.desc()).all()
    return jsonify([q.to_dict(include_count=True) for q in rows])


@quizzes.route('', methods=['POST'])
def create_quiz():
    data = request.get_json(silent=True) or {}
    quiz = quiz_service.create_quiz(data.get('title'), data.get('quiz_type') or 'qa')
    return jsonify(quiz.to_dict(include_count=True)), 201


@quizzes.route('/<int:quiz_id>', methods=['GET'])
def get_quiz(quiz_id):
    quiz = quiz_service.load_quiz(quiz_id)
    payload = quiz.to_dict(include_count=True)
    payload['frozen'] = quiz_service.is_frozen(quiz)
    return jsonify(payload)


@quizzes.route('/<int:quiz_id>', methods=['PATCH'])
def rename_quiz(quiz_id):
    data = request.get_json(silent=True) or {}
    quiz = quiz_service.rename_quiz(quiz_service.load_quiz(quiz_id), data.get('title'))
    return jsonify(quiz.to_dict(include_count=True))


@quizzes.route('/<int:quiz_id>/questions', methods=['GET'])
def get_questions(quiz_id):
    quiz = quiz_service.load_quiz(quiz_id)
    return jsonify([q.to_dict() for q in quiz_service.ordered_questions(quiz.id)])


@quizzes.route('/<int:quiz_id>/questions', methods=['PUT'])
def put_questions(quiz_id):
    """Replaces the quiz's question list after validating it for the quiz type."""
    quiz = quiz_service.load_quiz(quiz_id)
    data = request.get_json(silent=True) or {}
    rows = quiz_service.replace_questions(quiz, data.get('questions'))
    return jsonify([q.to_dict() for q in rows])
