"""Initial ledger schema: users, accounts, transactions

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 10:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Money columns hold integer micro-units (6 decimals); see models.database.TokenAmount.
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("phone_number", sa.String(length=32), nullable=False),
        sa.Column("first_name", sa.String(length=100)),
        sa.Column("last_name", sa.String(length=100)),
        sa.Column("country", sa.String(length=2)),
        sa.Column("currency", sa.String(length=3)),
        sa.Column("currency_symbol", sa.String(length=8)),
        sa.Column("wallet_address", sa.String(length=42)),
        sa.Column("encrypted_private_key", sa.Text()),
        sa.Column("wallet_created_at", sa.DateTime(timezone=True)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("wallet_address"),
    )
    op.create_index("ix_users_phone_number", "users", ["phone_number"], unique=False)

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=128),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("account_number", sa.String(length=32), server_default=sa.text("''")),
        sa.Column("balance", sa.BigInteger(), server_default=sa.text("0")),
        sa.Column("initial_deposit", sa.BigInteger(), server_default=sa.text("0")),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("apy", sa.Numeric(8, 4), server_default=sa.text("0")),
        sa.Column("pool_id", sa.String(length=64)),
        sa.Column("protocol", sa.String(length=64)),
        sa.Column("chain", sa.String(length=64)),
        sa.Column("wallet_address", sa.String(length=42)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
        sa.Column("last_updated", sa.DateTime(timezone=True)),
        sa.Column("last_synced", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("user_id", "pool_id", name="uq_accounts_user_pool"),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )
    op.create_index("ix_accounts_user_id", "accounts", ["user_id"], unique=False)
    op.create_index("idx_accounts_user_type", "accounts", ["user_id", "type"], unique=False)
    op.create_index(
        "uq_accounts_user_waiting_room",
        "accounts",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("type = 'waiting-room'"),
        sqlite_where=sa.text("type = 'waiting-room'"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'completed'")),
        sa.Column("sender_id", sa.String(length=128), nullable=False),
        sa.Column("sender_name", sa.String(length=255)),
        sa.Column("sender_account_id", sa.String(length=64)),
        sa.Column("sender_account_name", sa.String(length=255)),
        sa.Column("recipient_id", sa.String(length=128), nullable=False),
        sa.Column("recipient_name", sa.String(length=255)),
        sa.Column("recipient_account_id", sa.String(length=64)),
        sa.Column("recipient_account_name", sa.String(length=255)),
        sa.Column("amount_sent", sa.BigInteger(), nullable=False),
        sa.Column("currency_sent", sa.String(length=8)),
        sa.Column("amount_received", sa.BigInteger(), nullable=False),
        sa.Column("currency_received", sa.String(length=8)),
        sa.Column("exchange_rate", sa.Numeric(20, 8)),
        sa.Column("fee", sa.Numeric(20, 8)),
        sa.Column("settlement_seconds", sa.Numeric(10, 3)),
        sa.Column("pool_id", sa.String(length=64)),
        sa.Column("protocol", sa.String(length=64)),
        sa.Column("account_created", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("tx_hash", sa.String(length=80), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_transactions_tx_hash", "transactions", ["tx_hash"], unique=False)
    op.create_index(
        "idx_transactions_sender", "transactions", ["sender_id", "created_at"], unique=False
    )
    op.create_index(
        "idx_transactions_recipient",
        "transactions",
        ["recipient_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_transactions_recipient", table_name="transactions")
    op.drop_index("idx_transactions_sender", table_name="transactions")
    op.drop_index("ix_transactions_tx_hash", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("uq_accounts_user_waiting_room", table_name="accounts")
    op.drop_index("idx_accounts_user_type", table_name="accounts")
    op.drop_index("ix_accounts_user_id", table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_users_phone_number", table_name="users")
    op.drop_table("users")
