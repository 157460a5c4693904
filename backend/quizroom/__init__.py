from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=flask_app.config.get('CORS_ORIGINS', []))

    from quizroom.api.quizzes import quizzes
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')

    from quizroom.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from quizroom.errors import QuizRoomError, TransientIOError

    @flask_app.errorhandler(QuizRoomError)
    def handle_quiz_room_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(SQLAlchemyError)
    def handle_store_error(exc):
        db.session.rollback()
        flask_app.logger.warning(f"[store-error] {exc.__class__.__name__}: {exc}")
        err = TransientIOError('Store temporarily unavailable, try again')
        return jsonify(err.to_dict()), err.status_code

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with one quiz per game mode."""
        from quizroom.seed import seed_demo_quizzes
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            quizzes = seed_demo_quizzes()
            print(f'Database has been reset and seeded with {len(quizzes)} quizzes!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
