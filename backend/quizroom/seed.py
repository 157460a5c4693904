"""Demo content for ``flask db-reset``."""

from quizroom.services.quizzes import create_quiz, replace_questions

DEMO_QUIZZES = [
    ('Capitals', 'qa', [
        {'text': 'Capital of France?', 'answer': 'Paris'},
        {'text': 'Capital of Japan?', 'answer': 'Tokyo'},
        {'text': 'Capital of Canada?', 'answer': 'Ottawa'},
    ]),
    ('Facts or fibs', 'true_false', [
        {'text': 'The Pacific is the largest ocean.', 'answer': 'true'},
        {'text': 'Spiders are insects.', 'answer': 'false'},
    ]),
    ('Famous landmarks', 'identify_image', [
        {'text': 'Which building is this?', 'answer': 'Eiffel Tower', 'image_path': 'landmarks/eiffel.jpg'},
        {'text': 'Which building is this?', 'answer': 'Colosseum', 'image_path': 'landmarks/colosseum.jpg'},
    ]),
    ('Longest rivers', 'blind_top5', [
        {'text': 'Nile'},
        {'text': 'Amazon'},
        {'text': 'Yangtze'},
        {'text': 'Mississippi'},
        {'text': 'Yenisei'},
    ]),
]


def seed_demo_quizzes():
    created = []
    for title, quiz_type, questions in DEMO_QUIZZES:
        quiz = create_quiz(title, quiz_type)
        replace_questions(quiz, questions)
        created.append(quiz)
    return created
