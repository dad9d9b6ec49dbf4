"""create match, question, answer and player stats tables

Revision ID: a1c4e7f2b9d0
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c4e7f2b9d0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'matches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('player1_id', sa.String(64), nullable=False),
        sa.Column('player2_id', sa.String(64), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('category', sa.String(128), nullable=False),
        sa.Column('difficulty', sa.String(32), nullable=True),
        sa.Column('stake_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('winner_id', sa.String(64), nullable=True),
        sa.Column('current_question_index', sa.Integer(), nullable=False),
        sa.Column('question_start_time', sa.DateTime(), nullable=True),
        sa.Column('question_duration_seconds', sa.Integer(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_matches_player1_id', 'matches', ['player1_id'])
    op.create_index('ix_matches_player2_id', 'matches', ['player2_id'])
    op.create_index('ix_matches_status', 'matches', ['status'])

    op.create_table(
        'match_questions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id'), nullable=False),
        sa.Column('question_index', sa.Integer(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options', sa.Text(), nullable=False),
        sa.Column('correct_option', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('match_id', 'question_index', name='uq_match_question_index'),
    )
    op.create_index('ix_match_questions_match_id', 'match_questions', ['match_id'])

    op.create_table(
        'match_answers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id'), nullable=False),
        sa.Column('player_id', sa.String(64), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('match_questions.id'), nullable=False),
        sa.Column('submitted_option', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('match_id', 'player_id', 'question_id', name='uq_match_answer_player_question'),
    )
    op.create_index('ix_match_answers_match_id', 'match_answers', ['match_id'])

    op.create_table(
        'player_stats',
        sa.Column('user_id', sa.String(64), primary_key=True),
        sa.Column('matches_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade():
    op.drop_table('player_stats')
    op.drop_index('ix_match_answers_match_id', table_name='match_answers')
    op.drop_table('match_answers')
    op.drop_index('ix_match_questions_match_id', table_name='match_questions')
    op.drop_table('match_questions')
    op.drop_index('ix_matches_status', table_name='matches')
    op.drop_index('ix_matches_player2_id', table_name='matches')
    op.drop_index('ix_matches_player1_id', table_name='matches')
    op.drop_table('matches')
