"""entitlement_core_schema

Revision ID: 5c1e2a7b9d40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "5c1e2a7b9d40"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "games",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("pricing_type", sa.String(16), nullable=False, server_default=sa.text("'free'")),
        sa.Column("price", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'TWD'")),
        sa.Column("payment_product_id", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("pricing_type IN ('free','one_time','per_chapter')", name="ck_games_pricing_type"),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_games_price_non_negative"),
    )
    op.create_index("idx_games_tenant", "games", ["tenant_id"])

    op.create_table(
        "game_chapters",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("game_id", sa.Uuid(), nullable=False),
        sa.Column("chapter_order", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column(
            "unlock_type",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'complete_previous'"),
        ),
        sa.Column("price", sa.Integer(), nullable=True),
        sa.Column("payment_product_id", sa.String(128), nullable=True),
        sa.CheckConstraint(
            "unlock_type IN ('free','complete_previous','score_threshold','paid')",
            name="ck_game_chapters_unlock_type",
        ),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_game_chapters_price_non_negative"),
        sa.ForeignKeyConstraint(["game_id"], ["games.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_game_chapters_order", "game_chapters", ["game_id", "chapter_order"])

    op.create_table(
        "redeem_codes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("game_id", sa.Uuid(), nullable=False),
        sa.Column("chapter_id", sa.Uuid(), nullable=True),
        sa.Column("scope", sa.String(16), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("label", sa.String(200), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("scope IN ('game','chapter')", name="ck_redeem_codes_scope"),
        sa.CheckConstraint(
            "(scope = 'game' AND chapter_id IS NULL) OR (scope = 'chapter' AND chapter_id IS NOT NULL)",
            name="ck_redeem_codes_scope_chapter_consistency",
        ),
        sa.CheckConstraint(
            "status IN ('active','used','expired','disabled')",
            name="ck_redeem_codes_status",
        ),
        sa.CheckConstraint("max_uses >= 1", name="ck_redeem_codes_max_uses_positive"),
        sa.CheckConstraint("used_count >= 0", name="ck_redeem_codes_used_count_non_negative"),
        sa.CheckConstraint("used_count <= max_uses", name="ck_redeem_codes_used_count_le_max"),
        sa.CheckConstraint(
            "(status = 'used' AND used_count = max_uses) OR (status <> 'used' AND used_count < max_uses)",
            name="ck_redeem_codes_used_status_consistency",
        ),
        sa.ForeignKeyConstraint(["game_id"], ["games.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["chapter_id"], ["game_chapters.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("code", name="uq_redeem_codes_code"),
    )
    op.create_index("idx_redeem_codes_game", "redeem_codes", ["game_id"])
    op.create_index("idx_redeem_codes_tenant", "redeem_codes", ["tenant_id"])
    op.create_index("idx_redeem_codes_status", "redeem_codes", ["status"])

    op.create_table(
        "redeem_code_uses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code_id", sa.Uuid(), nullable=False),
        sa.Column("actor_id", sa.String(128), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["code_id"], ["redeem_codes.id"]),
        sa.UniqueConstraint("code_id", "actor_id", name="uq_redeem_code_uses_code_actor"),
    )
    op.create_index("idx_redeem_code_uses_code", "redeem_code_uses", ["code_id"])
    op.create_index("idx_redeem_code_uses_actor", "redeem_code_uses", ["actor_id"])

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_id", sa.String(128), nullable=False),
        sa.Column("game_id", sa.Uuid(), nullable=False),
        sa.Column("chapter_id", sa.Uuid(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'TWD'")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("gateway_checkout_session_id", sa.String(200), nullable=True),
        sa.Column("gateway_payment_id", sa.String(200), nullable=True),
        sa.Column("raw_gateway_payload", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending','completed')", name="ck_payment_transactions_status"),
        sa.CheckConstraint("amount >= 0", name="ck_payment_transactions_amount_non_negative"),
        sa.ForeignKeyConstraint(["game_id"], ["games.id"]),
        sa.ForeignKeyConstraint(["chapter_id"], ["game_chapters.id"]),
    )
    op.create_index("idx_payment_transactions_actor", "payment_transactions", ["actor_id"])
    op.create_index(
        "idx_payment_transactions_checkout_session",
        "payment_transactions",
        ["gateway_checkout_session_id"],
    )
    op.create_index("idx_payment_transactions_status", "payment_transactions", ["status"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_id", sa.String(128), nullable=False),
        sa.Column("game_id", sa.Uuid(), nullable=False),
        sa.Column("chapter_id", sa.Uuid(), nullable=True),
        sa.Column("purchase_type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(10), nullable=False, server_default=sa.text("'TWD'")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("source_code_id", sa.Uuid(), nullable=True),
        sa.Column("source_transaction_id", sa.Uuid(), nullable=True),
        sa.Column("granted_by", sa.String(64), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "purchase_type IN ('redeem_code','cash_payment','online_payment','in_game_points')",
            name="ck_purchases_purchase_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending','completed','failed','refunded')",
            name="ck_purchases_status",
        ),
        sa.CheckConstraint("amount >= 0", name="ck_purchases_amount_non_negative"),
        sa.ForeignKeyConstraint(["game_id"], ["games.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["chapter_id"], ["game_chapters.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_code_id"], ["redeem_codes.id"]),
        sa.ForeignKeyConstraint(["source_transaction_id"], ["payment_transactions.id"]),
        sa.UniqueConstraint("source_transaction_id", name="uq_purchases_source_transaction_id"),
    )
    op.create_index("idx_purchases_actor", "purchases", ["actor_id"])
    op.create_index("idx_purchases_game", "purchases", ["game_id"])
    op.create_index("idx_purchases_actor_game_status", "purchases", ["actor_id", "game_id", "status"])
    op.create_index("idx_purchases_status", "purchases", ["status"])

    op.create_table(
        "tenant_settings",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("tenant_settings")

    op.drop_index("idx_purchases_status", table_name="purchases")
    op.drop_index("idx_purchases_actor_game_status", table_name="purchases")
    op.drop_index("idx_purchases_game", table_name="purchases")
    op.drop_index("idx_purchases_actor", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index("idx_payment_transactions_status", table_name="payment_transactions")
    op.drop_index("idx_payment_transactions_checkout_session", table_name="payment_transactions")
    op.drop_index("idx_payment_transactions_actor", table_name="payment_transactions")
    op.drop_table("payment_transactions")

    op.drop_index("idx_redeem_code_uses_actor", table_name="redeem_code_uses")
    op.drop_index("idx_redeem_code_uses_code", table_name="redeem_code_uses")
    op.drop_table("redeem_code_uses")

    op.drop_index("idx_redeem_codes_status", table_name="redeem_codes")
    op.drop_index("idx_redeem_codes_tenant", table_name="redeem_codes")
    op.drop_index("idx_redeem_codes_game", table_name="redeem_codes")
    op.drop_table("redeem_codes")

    op.drop_index("idx_game_chapters_order", table_name="game_chapters")
    op.drop_table("game_chapters")

    op.drop_index("idx_games_tenant", table_name="games")
    op.drop_table("games")
