"""create quiz, question, room, player, submission and score tables

Revision ID: 5c2a9e41d7b3
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e41d7b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'quiz',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('quiz_type', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('answer', sa.Text(), nullable=True),
        sa.Column('image_path', sa.String(length=500), nullable=True),
        sa.UniqueConstraint('quiz_id', 'position', name='uq_question_quiz_position'),
    )
    op.create_index('ix_question_quiz_id', 'question', ['quiz_id'])

    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
        sa.Column('room_code', sa.String(length=6), nullable=False),
        sa.Column('host_token', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_question_id', sa.Integer(),
                  sa.ForeignKey('question.id', name='fk_room_current_question_id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_room_room_code', 'room', ['room_code'], unique=True)
    op.create_index('ix_room_quiz_id', 'room', ['quiz_id'])

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('nickname', sa.String(length=64), nullable=False),
        sa.Column('player_token', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_player_room_id', 'player', ['room_id'])

    op.create_table(
        'submission',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=False),
        sa.Column('slot', sa.Integer(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('room_id', 'question_id', 'player_id', name='uq_submission_room_question_player'),
        sa.UniqueConstraint('room_id', 'player_id', 'slot', name='uq_submission_room_player_slot'),
    )
    op.create_index('ix_submission_room_question', 'submission', ['room_id', 'question_id'])

    op.create_table(
        'score',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('room_id', 'player_id', name='uq_score_room_player'),
    )


def downgrade():
    op.drop_table('score')
    op.drop_index('ix_submission_room_question', table_name='submission')
    op.drop_table('submission')
    op.drop_index('ix_player_room_id', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_room_quiz_id', table_name='room')
    op.drop_index('ix_room_room_code', table_name='room')
    op.drop_table('room')
    op.drop_index('ix_question_quiz_id', table_name='question')
    op.drop_table('question')
    op.drop_table('quiz')
