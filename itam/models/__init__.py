"""ORM models for the asset inventory."""

from __future__ import annotations

from .activity_log import ActivityLog
from .hardware import Hardware
from .issuance import (
    Acknowledgement,
    AcknowledgementStatus,
    ComponentIssuanceDetail,
    Issuance,
    IssuanceSequence,
    IssuanceType,
)
from .part import HardwarePart, Part, PartInventory
from .software import HardwareSoftware, SoftwareInventory, SoftwareLicense

__all__ = [
    "ActivityLog",
    "Acknowledgement",
    "AcknowledgementStatus",
    "ComponentIssuanceDetail",
    "Hardware",
    "HardwarePart",
    "HardwareSoftware",
    "Issuance",
    "IssuanceSequence",
    "IssuanceType",
    "Part",
    "PartInventory",
    "SoftwareInventory",
    "SoftwareLicense",
]
