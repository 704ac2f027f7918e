from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3a91c2f0b7d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BigId = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', BigId, primary_key=True),
        sa.Column('telegram_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False, server_default=''),
        sa.Column('role', sa.String(), nullable=False, server_default='client'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("role in ('client','therapist')", name='ck_users_role'),
    )
    op.create_index('ix_users_telegram_id', 'users', ['telegram_id'], unique=True)

    op.create_table(
        'relationships',
        sa.Column('id', BigId, primary_key=True),
        sa.Column('client_id', BigId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('therapist_id', BigId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('connected_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('client_id', 'therapist_id', name='uq_relationships_pair'),
    )
    op.create_index('idx_relationships_client', 'relationships', ['client_id'])
    op.create_index('idx_relationships_therapist', 'relationships', ['therapist_id'])

    op.create_table(
        'invite_tokens',
        sa.Column('id', BigId, primary_key=True),
        sa.Column('token', sa.String(64), nullable=False),
        sa.Column('inviter_id', BigId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invite_type', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "invite_type in ('invite_therapist','invite_client')", name='ck_invite_tokens_type'
        ),
    )
    op.create_index('ix_invite_tokens_token', 'invite_tokens', ['token'], unique=True)

    op.create_table(
        'notification_settings',
        sa.Column('id', BigId, primary_key=True),
        sa.Column('user_id', BigId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reminder_time', sa.String(5), nullable=False, server_default='20:00'),
        sa.Column('therapist_mode', sa.String(), nullable=False, server_default='per_client'),
        sa.Column('batch_time', sa.String(5), nullable=False, server_default='18:00'),
        sa.CheckConstraint(
            "therapist_mode in ('per_client','batch_digest')", name='ck_notification_settings_mode'
        ),
    )

    op.create_table(
        'journal_entries',
        sa.Column('id', BigId, primary_key=True),
        sa.Column('user_id', BigId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False, server_default=''),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('therapist_comments', sa.Text(), nullable=True),
        sa.Column('is_highlighted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_entries_user_date', 'journal_entries', ['user_id', 'entry_date'])

    op.create_table(
        'day_ratings',
        sa.Column('id', BigId, primary_key=True),
        sa.Column('user_id', BigId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('client_rating', sa.Integer(), nullable=True),
        sa.Column('therapist_rating', sa.Integer(), nullable=True),
        sa.UniqueConstraint('user_id', 'date', name='uq_day_ratings_user_date'),
        sa.CheckConstraint(
            "client_rating is null or client_rating between 1 and 5", name='ck_day_ratings_client'
        ),
        sa.CheckConstraint(
            "therapist_rating is null or therapist_rating between 1 and 5", name='ck_day_ratings_therapist'
        ),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('day_ratings')
    op.drop_index('idx_entries_user_date', table_name='journal_entries')
    op.drop_table('journal_entries')
    op.drop_table('notification_settings')
    op.drop_index('ix_invite_tokens_token', table_name='invite_tokens')
    op.drop_table('invite_tokens')
    op.drop_index('idx_relationships_therapist', table_name='relationships')
    op.drop_index('idx_relationships_client', table_name='relationships')
    op.drop_table('relationships')
    op.drop_index('ix_users_telegram_id', table_name='users')
    op.drop_table('users')
