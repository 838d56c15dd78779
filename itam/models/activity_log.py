"""SQLAlchemy model for the audit trail shared by every tracked entity."""

from __future__ import annotations

from sqlalchemy import JSON, Column, Index, Integer, Text

from ..db.session import Base


class ActivityLog(Base):
    """Append-only audit entry for a change to any tracked entity."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_loggable", "loggable_type", "loggable_id"),
        Index("ix_activity_logs_related", "related_type", "related_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loggable_type = Column(Text, nullable=False)
    loggable_id = Column(Integer, nullable=False)
    action_type = Column(Text, nullable=False, index=True)
    action_by = Column(Integer, nullable=True)
    action_at = Column(Text, nullable=False, index=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    remarks = Column(Text, nullable=True)
    # Optional link to a second entity, e.g. the issuance behind a part install
    related_type = Column(Text, nullable=True)
    related_id = Column(Integer, nullable=True)
    # ``metadata`` is reserved on declarative classes.
    meta = Column("metadata", JSON, nullable=True)
