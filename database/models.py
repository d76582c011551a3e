"""
SQLAlchemy ORM models for integrations, archived items and the activity log.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

from utils.schemas import ArchiveStatus, SyncStatus, ToolSource

# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class IntegrationCredential(Base):
    """One organization's connection to one provider (soft-deleted via ``is_active``)."""

    __tablename__ = "tool_integrations"
    __table_args__ = (
        UniqueConstraint("organization_id", "source", name="uq_tool_integrations_org_source"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    source = Column(Enum(ToolSource, name="tool_source"), nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    scopes = Column(JSONType, nullable=False, default=list)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    sync_status = Column(Enum(SyncStatus, name="sync_status"), nullable=False, default=SyncStatus.IDLE)
    last_synced_at = Column(DateTime(timezone=True))
    last_error = Column(Text)
    last_error_at = Column(DateTime(timezone=True))
    connected_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ArchivedFile(Base):
    __tablename__ = "archived_files"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    source = Column(Enum(ToolSource, name="tool_source"), nullable=False)
    external_id = Column(String(512), nullable=False)
    name = Column(String(512), nullable=False)
    original_path = Column(Text)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    action_type = Column(String(64), nullable=False, default="ARCHIVE_FILE")
    status = Column(Enum(ArchiveStatus, name="archive_status"), nullable=False, default=ArchiveStatus.ARCHIVED)
    archived_at = Column(DateTime(timezone=True), default=_utcnow)
    restored_at = Column(DateTime(timezone=True))


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (Index("ix_activities_org_created", "organization_id", "created_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), nullable=False)
    user_id = Column(Uuid(as_uuid=True), nullable=True)
    action = Column(String(128), nullable=False)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
