import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///quizroom.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Room code collision retries
    ROOM_CODE_ATTEMPTS = int(os.environ.get('ROOM_CODE_ATTEMPTS', '24'))
    # Minimum players required to start a room
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '1'))
    # Poll intervals handed to clients (seconds)
    PLAYER_POLL_INTERVAL_SEC = float(os.environ.get('PLAYER_POLL_INTERVAL_SEC', '2'))
    HOST_POLL_INTERVAL_SEC = float(os.environ.get('HOST_POLL_INTERVAL_SEC', '3'))
    # Comma separated list of allowed browser origins
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173'
        ).split(',') if o.strip()
    ]
