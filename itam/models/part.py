"""SQLAlchemy models for the part catalog, condition-partitioned stock and
installed parts.

A catalog ``Part`` is identified by type, brand, model and specifications.
Stock is held per condition in ``PartInventory``; quantities only change
through the inventory ledger in ``itam.crud.inventory``.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.session import Base


class Part(Base):
    """Catalog entry for a kind of part; stock lives in ``PartInventory``."""

    __tablename__ = "parts"
    __table_args__ = (
        UniqueConstraint("part_type", "brand", "model", "specifications", name="uq_parts_identity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    part_type = Column(Text, nullable=False)
    brand = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    specifications = Column(Text, nullable=False, default="")
    created_at = Column(Text, nullable=False)

    inventory = relationship("PartInventory", back_populates="part", order_by="PartInventory.id")

    @property
    def description(self) -> str:
        return f"{self.part_type} - {self.brand} {self.model}"


class PartInventory(Base):
    """Stock for one part in one condition."""

    __tablename__ = "part_inventory"
    __table_args__ = (
        UniqueConstraint("part_id", "condition", name="uq_part_inventory_condition"),
        CheckConstraint("quantity >= 0", name="ck_part_inventory_quantity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    part_id = Column(Integer, ForeignKey("parts.id"), nullable=False, index=True)
    condition = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    # Procurement details, left empty on rows auto-created by returns
    location = Column(Text, nullable=True)
    unit_cost = Column(Float, nullable=True)
    supplier = Column(Text, nullable=True)
    reorder_level = Column(Integer, nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    part = relationship("Part", back_populates="inventory")


class HardwarePart(Base):
    """A part installed on a hardware unit.

    The descriptive fields are copied from the catalog at install time so later
    catalog edits never rewrite what was actually installed.
    """

    __tablename__ = "hardware_parts"

    id = Column(Integer, primary_key=True, index=True)
    hardware_id = Column(Integer, ForeignKey("hardware.id", ondelete="CASCADE"), nullable=False, index=True)
    part_type = Column(Text, nullable=False)
    brand = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    specifications = Column(Text, nullable=False, default="")
    serial_number = Column(Text, nullable=True)
    # Condition of the unit as drawn and the stock row it came from
    condition = Column(Text, nullable=True)
    source_inventory_id = Column(Integer, ForeignKey("part_inventory.id"), nullable=True, index=True)
    status = Column(Text, nullable=False, default="installed")
    installed_date = Column(Text, nullable=True)
    removed_date = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)

    hardware = relationship("Hardware", back_populates="parts")

    # Copied into audit entries and issuance details
    SNAPSHOT_FIELDS = (
        "part_type",
        "brand",
        "model",
        "specifications",
        "serial_number",
        "condition",
        "source_inventory_id",
        "status",
        "installed_date",
    )

    def snapshot(self) -> dict[str, object]:
        data = {field: getattr(self, field) for field in self.SNAPSHOT_FIELDS}
        data["id"] = self.id
        return data

    @property
    def description(self) -> str:
        return f"{self.part_type} - {self.brand} {self.model}"
