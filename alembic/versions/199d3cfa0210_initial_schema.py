"""initial_schema

Revision ID: 199d3cfa0210
Revises: 
Create Date: 2026-10-19 09:12:31.402117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '199d3cfa0210'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    """Create marketplace tables: users, trips, requests, chat, ratings, blocks, contact, notifications."""
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("type", sa.String(), nullable=False, server_default="PERSON"),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("role", sa.String(), nullable=False, server_default="USER"),
        sa.Column("average_rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)
    op.create_index("ix_user_status", "user", ["status"])
    op.create_table(
        "trip",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("publisher_id", sa.Integer(), nullable=False),
        sa.Column("origin_name", sa.String(), nullable=False),
        sa.Column("destination_name", sa.String(), nullable=False),
        sa.Column("origin_geom", sa.String(), nullable=True),
        sa.Column("destination_geom", sa.String(), nullable=True),
        sa.Column("departure_at", sa.DateTime(), nullable=False),
        sa.Column("vehicle_type", sa.String(), nullable=False, server_default="CAR"),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("booked_seats", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price_per_seat", sa.Float(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="PUBLISHED"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["publisher_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("booked_seats <= capacity", name="ck_trip_seats"),
    )
    op.create_index("ix_trip_publisher_id", "trip", ["publisher_id"])
    op.create_index("ix_trip_departure_at", "trip", ["departure_at"])
    op.create_index("ix_trip_status", "trip", ["status"])
    op.create_table(
        "request",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("applicant_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.ForeignKeyConstraint(["applicant_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_request_trip_id", "request", ["trip_id"])
    op.create_index("ix_request_applicant_id", "request", ["applicant_id"])
    op.create_index("ix_request_status", "request", ["status"])
    op.create_table(
        "chat",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_a_id", sa.Integer(), nullable=False),
        sa.Column("user_b_id", sa.Integer(), nullable=False),
        sa.Column("last_message", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_a_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["user_b_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_chat_pair"),
    )
    op.create_index("ix_chat_user_a_id", "chat", ["user_a_id"])
    op.create_index("ix_chat_user_b_id", "chat", ["user_b_id"])
    op.create_table(
        "message",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("chat_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["chat_id"], ["chat.id"]),
        sa.ForeignKeyConstraint(["sender_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_message_chat_id", "message", ["chat_id"])
    op.create_index("ix_message_created_at", "message", ["created_at"])
    op.create_table(
        "rating",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reviewer_user_id", sa.Integer(), nullable=False),
        sa.Column("rated_user_id", sa.Integer(), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("comment", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["reviewer_user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["rated_user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reviewer_user_id", "rated_user_id", "trip_id", name="uq_rating_per_trip"),
        sa.CheckConstraint("value BETWEEN 1 AND 5", name="ck_rating_value"),
    )
    op.create_index("ix_rating_rated_user_id", "rating", ["rated_user_id"])
    op.create_table(
        "blocked_user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("blocker_id", sa.Integer(), nullable=False),
        sa.Column("blocked_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["blocker_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["blocked_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_block_pair"),
    )
    op.create_index("ix_blocked_user_blocker_id", "blocked_user", ["blocker_id"])
    op.create_index("ix_blocked_user_blocked_id", "blocked_user", ["blocked_id"])
    op.create_table(
        "contact_submission",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False, server_default="GENERAL"),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="OPEN"),
        sa.Column("priority", sa.String(), nullable=False, server_default="MEDIUM"),
        sa.Column("response", sa.String(), nullable=True),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contact_submission_status", "contact_submission", ["status"])
    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("from_user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=True),
        sa.Column("request_id", sa.Integer(), nullable=True),
        sa.Column("chat_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["from_user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.ForeignKeyConstraint(["request_id"], ["request.id"]),
        sa.ForeignKeyConstraint(["chat_id"], ["chat.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])
    op.create_index("ix_notification_is_read", "notification", ["is_read"])
    op.create_index("ix_notification_created_at", "notification", ["created_at"])


def downgrade() -> None:
    """Drop all initial tables."""
    op.drop_index("ix_notification_created_at", table_name="notification")
    op.drop_index("ix_notification_is_read", table_name="notification")
    op.drop_index("ix_notification_user_id", table_name="notification")
    op.drop_table("notification")
    op.drop_index("ix_contact_submission_status", table_name="contact_submission")
    op.drop_table("contact_submission")
    op.drop_index("ix_blocked_user_blocked_id", table_name="blocked_user")
    op.drop_index("ix_blocked_user_blocker_id", table_name="blocked_user")
    op.drop_table("blocked_user")
    op.drop_index("ix_rating_rated_user_id", table_name="rating")
    op.drop_table("rating")
    op.drop_index("ix_message_created_at", table_name="message")
    op.drop_index("ix_message_chat_id", table_name="message")
    op.drop_table("message")
    op.drop_index("ix_chat_user_b_id", table_name="chat")
    op.drop_index("ix_chat_user_a_id", table_name="chat")
    op.drop_table("chat")
    op.drop_index("ix_request_status", table_name="request")
    op.drop_index("ix_request_applicant_id", table_name="request")
    op.drop_index("ix_request_trip_id", table_name="request")
    op.drop_table("request")
    op.drop_index("ix_trip_status", table_name="trip")
    op.drop_index("ix_trip_departure_at", table_name="trip")
    op.drop_index("ix_trip_publisher_id", table_name="trip")
    op.drop_table("trip")
    op.drop_index("ix_user_status", table_name="user")
    op.drop_index("ix_user_email", table_name="user")
    op.drop_table("user")
