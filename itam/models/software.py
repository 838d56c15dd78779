"""SQLAlchemy models for the software catalog, its licenses and installations."""

from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.session import Base


class SoftwareInventory(Base):
    """A software title; licenses and installations point at it."""

    __tablename__ = "software_inventory"
    __table_args__ = (
        UniqueConstraint("software_name", "software_type", "version", name="uq_software_identity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    software_name = Column(Text, nullable=False)
    software_type = Column(Text, nullable=False)
    version = Column(Text, nullable=False, default="")
    publisher = Column(Text, nullable=True)
    requires_key_tracking = Column(Boolean, nullable=False, default=False)
    remarks = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    licenses = relationship("SoftwareLicense", back_populates="software", order_by="SoftwareLicense.id")

    @property
    def label(self) -> str:
        return f"{self.software_name} {self.version}".strip()


class SoftwareLicense(Base):
    """A license for a software title, identified by key or by account."""

    __tablename__ = "software_licenses"
    __table_args__ = (
        CheckConstraint(
            "current_activations >= 0 AND current_activations <= max_activations",
            name="ck_software_licenses_activations",
        ),
        # A license is found by its key or by the account it is bound to
        CheckConstraint(
            "license_key IS NOT NULL OR account_user IS NOT NULL",
            name="ck_software_licenses_identifier",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    software_inventory_id = Column(Integer, ForeignKey("software_inventory.id"), nullable=False, index=True)
    license_key = Column(Text, nullable=True, index=True)
    account_user = Column(Text, nullable=True, index=True)
    account_password = Column(Text, nullable=True)
    max_activations = Column(Integer, nullable=False, default=1)
    current_activations = Column(Integer, nullable=False, default=0)
    remarks = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    software = relationship("SoftwareInventory", back_populates="licenses")

    @property
    def identifier(self) -> str | None:
        return self.license_key or self.account_user

    @property
    def available_activations(self) -> int:
        return max((self.max_activations or 0) - (self.current_activations or 0), 0)


class HardwareSoftware(Base):
    """Software installed on a hardware unit."""

    __tablename__ = "hardware_software"

    id = Column(Integer, primary_key=True, index=True)
    hardware_id = Column(Integer, ForeignKey("hardware.id", ondelete="CASCADE"), nullable=False, index=True)
    software_inventory_id = Column(Integer, ForeignKey("software_inventory.id"), nullable=False, index=True)
    # Null for titles that do not track keys
    software_license_id = Column(Integer, ForeignKey("software_licenses.id"), nullable=True, index=True)
    status = Column(Text, nullable=False, default="Active")
    installation_date = Column(Text, nullable=True)
    uninstall_date = Column(Text, nullable=True)
    installed_by = Column(Integer, nullable=True)
    remarks = Column(Text, nullable=True)

    hardware = relationship("Hardware", back_populates="software")
    software = relationship("SoftwareInventory", lazy="joined")
    license = relationship("SoftwareLicense", lazy="joined")

    def snapshot(self) -> dict[str, object]:
        software = self.software
        license = self.license
        return {
            "id": self.id,
            "software_inventory_id": self.software_inventory_id,
            "software_name": software.software_name if software else None,
            "software_type": software.software_type if software else None,
            "version": software.version if software else None,
            "software_license_id": self.software_license_id,
            "license_key": license.license_key if license else None,
            "account_user": license.account_user if license else None,
            "status": self.status,
            "installation_date": self.installation_date,
        }
