"""
RTI Tracker - SQLAlchemy ORM Models
Relational layout of the mirror store for production deployments.
"""
from sqlalchemy import Column, String, Integer, Float, DateTime, Text, Boolean, Enum as SQLEnum

from ..database import Base
from .domain import Role, RequestStatus, TimingKind


class StoreMetaDB(Base):
    """Single-row table holding the stored schema version."""
    __tablename__ = "store_meta"

    id = Column(Integer, primary_key=True)
    schema_version = Column(Integer, nullable=False, default=0)


class UserDB(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    external_identity_number = Column(String(64), unique=True, nullable=False, index=True)
    role = Column(SQLEnum(Role), nullable=False, index=True)
    credential_hash = Column(String(255), nullable=False)
    wallet_address = Column(String(128), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)


class RequestDB(Base):
    """Mirror of an on-ledger request. Ids are ledger-assigned."""
    __tablename__ = "requests"

    id = Column(String(64), primary_key=True)
    client_id = Column(String(36), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    request_hash = Column(String(128), nullable=False, index=True)
    request_filename = Column(String(500), nullable=True)
    status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True)
    assigned_officer_user_id = Column(String(36), nullable=True, index=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    response_hash = Column(String(128), nullable=True, index=True)
    response_filename = Column(String(500), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    ledger_tx_id = Column(String(128), nullable=True)


class ComplaintDB(Base):
    """Active complaints. Rows are deleted when archived."""
    __tablename__ = "complaints"

    id = Column(String(36), primary_key=True)
    request_id = Column(String(64), nullable=False, index=True)
    client_user_id = Column(String(36), nullable=False, index=True)
    officer_user_id = Column(String(36), nullable=True, index=True)
    text = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)
    notified = Column(Boolean, nullable=False, default=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    resolution_hash = Column(String(128), nullable=True)
    resolution_filename = Column(String(500), nullable=True)
    resolution_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by_user = Column(Boolean, nullable=False, default=False)
    resolved_by_admin = Column(Boolean, nullable=False, default=False)


class ArchivedComplaintDB(Base):
    """Append-only. Never updated after insert."""
    __tablename__ = "resolved_complaints"

    id = Column(String(36), primary_key=True)
    request_id = Column(String(64), nullable=False, index=True)
    client_user_id = Column(String(36), nullable=False)
    officer_user_id = Column(String(36), nullable=True)
    complaint_created_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=False)


class TimingRecordDB(Base):
    """Append-only timing telemetry for lifecycle transitions."""
    __tablename__ = "timing_records"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(SQLEnum(TimingKind), nullable=False, index=True)
    request_id = Column(String(64), nullable=False, index=True)
    actor_user_id = Column(String(36), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    content_start = Column(DateTime(timezone=True), nullable=True)
    content_end = Column(DateTime(timezone=True), nullable=True)
    ledger_start = Column(DateTime(timezone=True), nullable=False)
    ledger_end = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    content_ms = Column(Float, nullable=True)
    ledger_ms = Column(Float, nullable=False)
    total_ms = Column(Float, nullable=False)
    content_id = Column(String(128), nullable=True)
    ledger_tx_id = Column(String(128), nullable=False)
