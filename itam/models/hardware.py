"""SQLAlchemy model for hardware units, the assets parts and software are installed on."""

from __future__ import annotations

from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Hardware(Base):
    """A physical unit (usually a PC) that parts and software are installed on."""

    __tablename__ = "hardware"

    id = Column(Integer, primary_key=True, index=True)
    hostname = Column(Text, nullable=False, unique=True, index=True)
    category = Column(Text, nullable=True)
    brand = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    serial_number = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    department = Column(Text, nullable=True)
    # Current holder, maintained by whole-unit issuance
    issued_to = Column(Integer, nullable=True, index=True)
    date_issued = Column(Text, nullable=True)
    status = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    # Retire units through ComponentService.delete_hardware so installed parts
    # and license activations go back to stock first.
    parts = relationship(
        "HardwarePart",
        back_populates="hardware",
        cascade="all, delete-orphan",
        order_by="HardwarePart.id",
    )
    software = relationship(
        "HardwareSoftware",
        back_populates="hardware",
        cascade="all, delete-orphan",
        order_by="HardwareSoftware.id",
    )

    @property
    def label(self) -> str:
        if self.category:
            return f"{self.hostname} ({self.category})"
        return self.hostname
