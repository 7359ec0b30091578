"""initial schema

Revision ID: 5f3a9c1e7b20
Revises:
Create Date: 2026-10-19 10:12:41.318204

"""

from alembic import op
import sqlalchemy as sa
import sqlmodel

from models import UtcAwareDateTime

# revision identifiers, used by Alembic.
revision = "5f3a9c1e7b20"
down_revision = None
branch_labels = None
depends_on = None

AutoString = sqlmodel.sql.sqltypes.AutoString


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("email", AutoString(), nullable=False),
        sa.Column("username", AutoString(), nullable=True),
        sa.Column("display_name", AutoString(), nullable=True),
        sa.Column("avatar_url", AutoString(), nullable=True),
        sa.Column("join_date", UtcAwareDateTime(timezone=True), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("updated_at", UtcAwareDateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_users_email"), ["email"], unique=True)
        batch_op.create_index(
            batch_op.f("ix_users_username"), ["username"], unique=True
        )

    op.create_table(
        "friendships",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("user_low_id", AutoString(), nullable=False),
        sa.Column("user_high_id", AutoString(), nullable=False),
        sa.Column("requester_id", AutoString(), nullable=False),
        sa.Column("recipient_id", AutoString(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "accepted", "declined", name="friendshipstatus"),
            nullable=False,
        ),
        sa.Column("created_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.Column("updated_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.CheckConstraint("user_low_id < user_high_id", name="ck_friend_order"),
        sa.ForeignKeyConstraint(["user_low_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["user_high_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_low_id", "user_high_id", name="uq_friend_pair"),
    )
    with op.batch_alter_table("friendships", schema=None) as batch_op:
        for column in (
            "user_low_id",
            "user_high_id",
            "requester_id",
            "recipient_id",
            "status",
        ):
            batch_op.create_index(
                batch_op.f(f"ix_friendships_{column}"), [column], unique=False
            )

    op.create_table(
        "badges",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("name", AutoString(), nullable=False),
        sa.Column("description", AutoString(), nullable=False),
        sa.Column("icon_url", AutoString(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "challenges",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("title", AutoString(), nullable=False),
        sa.Column("description", AutoString(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("competitive", "collaborative", name="challengetype"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("upcoming", "active", "completed", name="challengestatus"),
            nullable=False,
        ),
        sa.Column("start_date", UtcAwareDateTime(timezone=True), nullable=False),
        sa.Column("end_date", UtcAwareDateTime(timezone=True), nullable=False),
        sa.Column("min_participants", sa.Integer(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("creator_id", AutoString(), nullable=False),
        sa.Column("created_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.Column("updated_at", UtcAwareDateTime(timezone=True), nullable=True),
        sa.CheckConstraint("start_date < end_date", name="ck_challenge_dates"),
        sa.CheckConstraint("participant_count >= 0", name="ck_challenge_count"),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("challenges", schema=None) as batch_op:
        for column in ("type", "status", "creator_id"):
            batch_op.create_index(
                batch_op.f(f"ix_challenges_{column}"), [column], unique=False
            )

    op.create_table(
        "challenge_goals",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("challenge_id", AutoString(), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "complete_games",
                "achieve_trophies",
                "play_time",
                "review_games",
                "score_points",
                "reach_level",
                name="goaltype",
            ),
            nullable=False,
        ),
        sa.Column("target", sa.Float(), nullable=False),
        sa.Column("description", AutoString(), nullable=True),
        sa.Column("created_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "challenge_rewards",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("challenge_id", AutoString(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("badge", "points", "title", name="rewardtype"),
            nullable=False,
        ),
        sa.Column("name", AutoString(), nullable=False),
        sa.Column("description", AutoString(), nullable=False),
        sa.Column("badge_id", AutoString(), nullable=True),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"]),
        sa.ForeignKeyConstraint(["badge_id"], ["badges.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "challenge_rules",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("challenge_id", AutoString(), nullable=False),
        sa.Column("rule", AutoString(), nullable=False),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "challenge_teams",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("challenge_id", AutoString(), nullable=False),
        sa.Column("name", AutoString(), nullable=False),
        sa.Column("created_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("challenge_id", "name", name="uq_team_name"),
    )
    for table in (
        "challenge_goals",
        "challenge_rewards",
        "challenge_rules",
        "challenge_teams",
    ):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(
                batch_op.f(f"ix_{table}_challenge_id"), ["challenge_id"], unique=False
            )

    op.create_table(
        "challenge_participants",
        sa.Column("challenge_id", AutoString(), nullable=False),
        sa.Column("user_id", AutoString(), nullable=False),
        sa.Column("team_id", AutoString(), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("joined_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.Column("updated_at", UtcAwareDateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "progress >= 0 AND progress <= 100", name="ck_progress_range"
        ),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["challenge_teams.id"]),
        sa.PrimaryKeyConstraint("challenge_id", "user_id"),
    )
    with op.batch_alter_table("challenge_participants", schema=None) as batch_op:
        batch_op.create_index(
            "idx_participants_progress", ["challenge_id", "progress"], unique=False
        )

    op.create_table(
        "claimed_rewards",
        sa.Column("user_id", AutoString(), nullable=False),
        sa.Column("reward_id", AutoString(), nullable=False),
        sa.Column("challenge_id", AutoString(), nullable=False),
        sa.Column("claimed_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["reward_id"], ["challenge_rewards.id"]),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"]),
        sa.PrimaryKeyConstraint("user_id", "reward_id"),
    )
    with op.batch_alter_table("claimed_rewards", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_claimed_rewards_challenge_id"), ["challenge_id"], unique=False
        )

    op.create_table(
        "user_badges",
        sa.Column("user_id", AutoString(), nullable=False),
        sa.Column("badge_id", AutoString(), nullable=False),
        sa.Column("challenge_id", AutoString(), nullable=False),
        sa.Column("claimed_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["badge_id"], ["badges.id"]),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"]),
        sa.PrimaryKeyConstraint("user_id", "badge_id", "challenge_id"),
    )

    op.create_table(
        "activity_events",
        sa.Column("id", AutoString(), nullable=False),
        sa.Column("user_id", AutoString(), nullable=False),
        sa.Column(
            "activity_type",
            sa.Enum(
                "friend_added",
                "challenge_created",
                "challenge_joined",
                "challenge_completed",
                "reward_claimed",
                name="activitytype",
            ),
            nullable=False,
        ),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", UtcAwareDateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("activity_events", schema=None) as batch_op:
        batch_op.create_index(
            "idx_activity_user_created", ["user_id", "created_at"], unique=False
        )


def downgrade() -> None:
    for table in (
        "activity_events",
        "user_badges",
        "claimed_rewards",
        "challenge_participants",
        "challenge_teams",
        "challenge_rules",
        "challenge_rewards",
        "challenge_goals",
        "challenges",
        "badges",
        "friendships",
        "users",
    ):
        op.drop_table(table)
