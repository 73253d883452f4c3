# backend/hunt_registry/core/storage/table_models.py
"""
SQLAlchemy entities for the table storage backend.

Wide-column style: every entity is addressed by ``(partition_key, row_key)``
and carries an ``etag`` column used for conditional updates.

    registry_app            ("app", "config")          App document
    registry_organizations  (<orgSlug>, "org")         Org document
    registry_hunts          (<orgSlug>, <huntId>)      projection of Org hunts
    registry_hunt_index     (<YYYY-MM-DD>, <slug:id>)  projection of App byDate
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

# Declarative base for all registry tables
Base = declarative_base()

APP_PARTITION = "app"
APP_ROW = "config"
ORG_ROW = "org"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppRegistryEntity(Base):
    __tablename__ = "registry_app"

    partition_key = Column(String(64), primary_key=True)
    row_key = Column(String(64), primary_key=True)
    etag = Column(String(64), nullable=False)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class OrganizationEntity(Base):
    __tablename__ = "registry_organizations"

    partition_key = Column(String(100), primary_key=True)
    row_key = Column(String(16), primary_key=True)
    etag = Column(String(64), nullable=False)
    org_name = Column(String(255), nullable=False)
    primary_contact_email = Column(String(255), nullable=True)
    hunts_total = Column(Integer, nullable=False, default=0)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class HuntEntity(Base):
    """Read projection of one hunt; rewritten with its Org document."""
    __tablename__ = "registry_hunts"

    partition_key = Column(String(100), primary_key=True)
    row_key = Column(String(150), primary_key=True)
    name = Column(String(255), nullable=False)
    start_date = Column(String(10), nullable=False, index=True)
    end_date = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False)
    payload = Column(Text, nullable=False)


class HuntIndexEntity(Base):
    """Read projection of ``byDate``; rewritten with the App document."""
    __tablename__ = "registry_hunt_index"

    partition_key = Column(String(10), primary_key=True)
    row_key = Column(String(255), primary_key=True)
    org_slug = Column(String(100), nullable=False, index=True)
    hunt_id = Column(String(150), nullable=False)
