# =======================================================================================
# app/models/tables.py - Table Definitions
# =======================================================================================
from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Boolean, DateTime, ForeignKey, Index,
)

metadata = MetaData()

users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(191), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(16), nullable=False, default="USER"),  # ADMIN | USER
    Column("created_at", DateTime, nullable=False),
)

doors = Table(
    "doors", metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(191), nullable=False),
    Column("location", String(191), nullable=True),
    Column("pin_hash", String(64), nullable=False),
    Column("is_online", Boolean, nullable=False, default=False),
    Column("last_seen", DateTime, nullable=True),
    Column("enrollment_mode", Boolean, nullable=False, default=False),
    Column("enrollment_user_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

# One row per user and per UID digest; replacements delete the old row first.
rfid_cards = Table(
    "rfid_cards", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("door_id", String(36), ForeignKey("doors.id", ondelete="CASCADE"), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("uid", String(64), nullable=False),
    Column("uid_hash", String(64), nullable=False, unique=True),
    Column("status", String(16), nullable=False, default="ACTIVE"),  # ACTIVE | REVOKED
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

door_access_logs = Table(
    "door_access_logs", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("door_id", String(36), ForeignKey("doors.id", ondelete="CASCADE"), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    Column("event", String(64), nullable=False),
    Column("rfid_uid", String(64), nullable=True),
    Column("method", String(64), nullable=False),
    Column("timestamp", DateTime, nullable=False),
    Index("ix_door_access_logs_door_ts", "door_id", "timestamp"),
)

alerts = Table(
    "alerts", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", String(16), nullable=False),   # fire | gas | door
    Column("level", String(16), nullable=False),  # INFO | WARNING | CRITICAL
    Column("message", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("acknowledged_by_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
)

push_tokens = Table(
    "push_tokens", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token", String(255), nullable=False, unique=True),
    Column("platform", String(16), nullable=False),  # web | android
)

# Door state reports exactly as the controller sent them (status/state + actor).
access_logs = Table(
    "access_logs", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_type", String(32), nullable=False),
    Column("actor", String(64), nullable=False),
    Column("timestamp", DateTime, nullable=False),
)
