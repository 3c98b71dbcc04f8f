"""Initial local replica schema

Revision ID: 4c2e9a7b1f03
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "4c2e9a7b1f03"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("nickname", sa.String(64), nullable=False),
        sa.Column("coins", sa.Integer(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("lifetime_score", sa.Integer(), nullable=True),
        sa.Column("streak", sa.Integer(), nullable=True),
        sa.Column("last_weekly_bonus", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_daily_bonus", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_shop_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_monthly_reset", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shop_items", sa.JSON(), nullable=True),
        sa.Column("badges", sa.JSON(), nullable=True),
        sa.Column("tutorial_seen", sa.Boolean(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_players_nickname", "players", ["nickname"])

    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("players.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("cost", sa.Integer(), nullable=True),
        sa.Column("reward", sa.Integer(), nullable=True),
        sa.Column("icon", sa.String(16), nullable=True),
    )
    op.create_index("ix_inventory_owner", "inventory", ["owner_id"])

    op.create_table(
        "sent_challenges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("uuid", sa.String(36), nullable=False, unique=True),
        sa.Column(
            "sender_id",
            sa.Integer(),
            sa.ForeignKey("players.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiry_cost", sa.Integer(), nullable=True),
        sa.Column("claimed_by", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "accepted", "rejected",
                name="sent_challenge_status",
                native_enum=False,
            ),
            nullable=True,
        ),
    )
    op.create_index("ix_sent_challenges_sender", "sent_challenges", ["sender_id"])

    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column(
            "receiver_id",
            sa.Integer(),
            sa.ForeignKey("players.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("reward", sa.Integer(), nullable=True),
        sa.Column("from_player", sa.String(64), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("receiver_id", "uuid", name="uq_challenges_receiver_uuid"),
    )
    op.create_index("ix_challenges_uuid", "challenges", ["uuid"])
    op.create_index(
        "ix_challenges_receiver_completed",
        "challenges",
        ["receiver_id", "completed_at"],
    )

    op.create_table(
        "leaderboard",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("nickname", sa.String(64), nullable=False, unique=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_leaderboard_score_desc", "leaderboard", ["score"])


def downgrade() -> None:
    op.drop_index("ix_leaderboard_score_desc", table_name="leaderboard")
    op.drop_table("leaderboard")
    op.drop_index("ix_challenges_receiver_completed", table_name="challenges")
    op.drop_index("ix_challenges_uuid", table_name="challenges")
    op.drop_table("challenges")
    op.drop_index("ix_sent_challenges_sender", table_name="sent_challenges")
    op.drop_table("sent_challenges")
    op.drop_index("ix_inventory_owner", table_name="inventory")
    op.drop_table("inventory")
    op.drop_index("ix_players_nickname", table_name="players")
    op.drop_table("players")
