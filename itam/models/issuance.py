"""SQLAlchemy models for issuances, their component details and acknowledgements.

An issuance is either a whole-unit handover or a batch of component
maintenance operations. Each carries one acknowledgement row that the
receiving employee signs off.
"""

from __future__ import annotations

from enum import IntEnum

from sqlalchemy import JSON, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class IssuanceType(IntEnum):
    WHOLE_UNIT = 1
    COMPONENT_MAINTENANCE = 2

    @property
    def label(self) -> str:
        return {1: "Whole Unit", 2: "Component Maintenance"}[self.value]


class AcknowledgementStatus(IntEnum):
    PENDING = 0
    ACKNOWLEDGED = 1

    @property
    def label(self) -> str:
        return {0: "Pending", 1: "Acknowledged"}[self.value]


class Issuance(Base):
    """Header row for one handover, numbered ISS-<year>-<seq>."""

    __tablename__ = "issuance"

    id = Column(Integer, primary_key=True, index=True)
    issuance_number = Column(Text, nullable=False, unique=True, index=True)
    issuance_type = Column(Integer, nullable=False)
    request_number = Column(Text, nullable=True)
    # Link & snapshot of the unit; the hostname outlives a deleted unit
    hostname = Column(Text, nullable=True)
    hardware_id = Column(Integer, ForeignKey("hardware.id", ondelete="SET NULL"), nullable=True, index=True)
    issued_to = Column(Integer, nullable=True, index=True)
    location = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(Text, nullable=False)

    acknowledgement = relationship(
        "Acknowledgement",
        back_populates="issuance",
        uselist=False,
        cascade="all, delete-orphan",
    )
    details = relationship(
        "ComponentIssuanceDetail",
        back_populates="issuance",
        cascade="all, delete-orphan",
        order_by="ComponentIssuanceDetail.id",
    )

    @property
    def type_label(self) -> str:
        return IssuanceType(self.issuance_type).label


class ComponentIssuanceDetail(Base):
    """One add/replace/remove operation recorded under a maintenance issuance."""

    __tablename__ = "component_issuance_details"

    id = Column(Integer, primary_key=True, index=True)
    issuance_id = Column(Integer, ForeignKey("issuance.id", ondelete="CASCADE"), nullable=False, index=True)
    operation_type = Column(Text, nullable=False)
    component_type = Column(Text, nullable=False)
    old_component_id = Column(Integer, nullable=True)
    old_component_condition = Column(Text, nullable=True)
    # Snapshots taken at the time of the operation
    old_component_data = Column(JSON, nullable=True)
    new_component_id = Column(Integer, nullable=True)
    new_component_condition = Column(Text, nullable=True)
    new_component_data = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    issuance = relationship("Issuance", back_populates="details")


class Acknowledgement(Base):
    """Sign-off state for an issuance."""

    __tablename__ = "acknowledgements"

    id = Column(Integer, primary_key=True, index=True)
    issuance_id = Column(Integer, ForeignKey("issuance.id", ondelete="CASCADE"), nullable=False, unique=True)
    acknowledged_by = Column(Integer, nullable=True, index=True)
    status = Column(Integer, nullable=False, default=AcknowledgementStatus.PENDING.value)
    acknowledged_at = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    issuance = relationship("Issuance", back_populates="acknowledgement")

    @property
    def is_acknowledged(self) -> bool:
        return self.status == AcknowledgementStatus.ACKNOWLEDGED

    @property
    def status_label(self) -> str:
        return AcknowledgementStatus(self.status).label


class IssuanceSequence(Base):
    """Per-year counter behind issuance numbers; updated under a row lock."""

    __tablename__ = "issuance_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
