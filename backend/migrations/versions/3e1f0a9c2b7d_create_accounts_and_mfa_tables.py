"""create accounts and MFA tables

Revision ID: 3e1f0a9c2b7d
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3e1f0a9c2b7d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='CLIENT'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('mfa_totp_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mfa_email_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mfa_required', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('mfa_state', sa.String(length=20), nullable=False, server_default='setup_pending'),
        sa.Column('totp_secret', sa.Text(), nullable=True),
        sa.Column('pending_totp_secret', sa.Text(), nullable=True),
        sa.Column('mfa_setup_at', sa.DateTime(), nullable=True),
        sa.Column('mfa_last_used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.create_index('ix_accounts_email', ['email'], unique=True)
        batch_op.create_index('ix_accounts_role', ['role'], unique=False)

    # Email login codes, hash only
    op.create_table('email_otps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('consumed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('consumed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('email_otps', schema=None) as batch_op:
        batch_op.create_index('ix_email_otps_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_email_otps_user_issued', ['user_id', 'issued_at'], unique=False)

    op.create_table('backup_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('invalidated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('backup_codes', schema=None) as batch_op:
        batch_op.create_index('ix_backup_codes_user_id', ['user_id'], unique=False)

    op.create_table('rate_limit_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('endpoint', sa.String(length=64), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('rate_limit_entries', schema=None) as batch_op:
        batch_op.create_index('ix_rate_limit_entries_key', ['key'], unique=False)
        batch_op.create_index('ix_rate_limit_entries_endpoint', ['endpoint'], unique=False)
        batch_op.create_index('ix_rate_limit_key_endpoint_ts', ['key', 'endpoint', 'timestamp'], unique=False)

    # Spent challenge tokens
    op.create_table('revoked_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('jti', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('revoked_tokens', schema=None) as batch_op:
        batch_op.create_index('ix_revoked_tokens_jti', ['jti'], unique=True)


def downgrade():
    with op.batch_alter_table('revoked_tokens', schema=None) as batch_op:
        batch_op.drop_index('ix_revoked_tokens_jti')
    op.drop_table('revoked_tokens')

    with op.batch_alter_table('rate_limit_entries', schema=None) as batch_op:
        batch_op.drop_index('ix_rate_limit_key_endpoint_ts')
        batch_op.drop_index('ix_rate_limit_entries_endpoint')
        batch_op.drop_index('ix_rate_limit_entries_key')
    op.drop_table('rate_limit_entries')

    with op.batch_alter_table('backup_codes', schema=None) as batch_op:
        batch_op.drop_index('ix_backup_codes_user_id')
    op.drop_table('backup_codes')

    with op.batch_alter_table('email_otps', schema=None) as batch_op:
        batch_op.drop_index('ix_email_otps_user_issued')
        batch_op.drop_index('ix_email_otps_user_id')
    op.drop_table('email_otps')

    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.drop_index('ix_accounts_role')
        batch_op.drop_index('ix_accounts_email')
    op.drop_table('accounts')
