"""Choose the stock row or license a component install draws from.

Reservation only reads: it picks the inventory row (or license) and hands it
back, and the caller decrements it in the same transaction. Returning a
removed part to stock is the one write here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.conditions import condition_rank, map_removal_condition, normalize_condition
from ..core.errors import (
    LicenseExhausted,
    LicenseIdentifierMissing,
    LicenseNotFound,
    NoInventoryAvailable,
    PartNotFound,
    SoftwareNotFound,
)
from ..crud.activity_log import EntityRef
from ..crud.inventory import find_or_create_inventory, increment_inventory
from ..models.hardware import Hardware
from ..models.part import HardwarePart, Part, PartInventory
from ..models.software import SoftwareInventory, SoftwareLicense
from ..schemas.components import PartSpec
from ..settings import settings

logger = logging.getLogger("itam.allocator")


@dataclass(frozen=True)
class AllocatedUnit:
    part: Part
    inventory: PartInventory
    requested_condition: str
    condition: str

    @property
    def fell_back(self) -> bool:
        return self.condition != self.requested_condition


@dataclass(frozen=True)
class AllocatedLicense:
    software: SoftwareInventory
    license: SoftwareLicense


def _clean(value: str | None) -> str:
    return (value or "").strip()


def find_part(db: Session, spec: PartSpec) -> Part | None:
    stmt = select(Part).where(
        Part.part_type == _clean(spec.part_type),
        Part.brand == _clean(spec.brand),
        Part.model == _clean(spec.model),
        Part.specifications == _clean(spec.specifications),
    )
    return db.execute(stmt).scalar_one_or_none()


def require_part(db: Session, spec: PartSpec) -> Part:
    part = find_part(db, spec)
    if part is None:
        raise PartNotFound(
            f"Part not found: {spec.part_type} - {spec.brand} {spec.model} ({spec.specifications})",
            details=spec.model_dump(),
        )
    return part


def find_software(db: Session, software_name: str, software_type: str, version: str | None) -> SoftwareInventory | None:
    stmt = select(SoftwareInventory).where(
        SoftwareInventory.software_name == _clean(software_name),
        SoftwareInventory.software_type == _clean(software_type),
        SoftwareInventory.version == _clean(version),
    )
    return db.execute(stmt).scalar_one_or_none()


def require_software(db: Session, software_name: str, software_type: str, version: str | None) -> SoftwareInventory:
    software = find_software(db, software_name, software_type, version)
    if software is None:
        raise SoftwareNotFound(
            f"Software not found: {software_name} {version or ''}".rstrip(),
            details={"software_name": software_name, "software_type": software_type, "version": version},
        )
    return software


def reserve_component(
    db: Session,
    spec: PartSpec,
    desired_condition: str,
    *,
    vocabulary: Sequence[str] | None = None,
) -> AllocatedUnit:
    """Pick the stock row one unit of ``spec`` should come from.

    Stock in ``desired_condition`` is used when there is any. Otherwise the
    first stocked condition in vocabulary order is used and a warning logged.
    Nothing is decremented here.
    """

    vocabulary = list(vocabulary or settings.INVENTORY_CONDITIONS)
    part = require_part(db, spec)
    requested = normalize_condition(desired_condition, vocabulary) or desired_condition

    stmt = (
        select(PartInventory)
        .where(PartInventory.part_id == part.id, PartInventory.quantity > 0)
        .order_by(PartInventory.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    stocked = db.execute(stmt).scalars().all()
    if not stocked:
        raise NoInventoryAvailable(
            f"No available inventory for {part.description}",
            details={"part_id": part.id, "requested_condition": requested},
        )

    for row in stocked:
        if row.condition.lower() == requested.lower():
            return AllocatedUnit(part=part, inventory=row, requested_condition=requested, condition=row.condition)

    chosen = sorted(stocked, key=lambda row: (condition_rank(row.condition, vocabulary), row.id))[0]
    logger.warning(
        "allocator.condition_fallback",
        extra={
            "extra_data": {
                "part_id": part.id,
                "requested_condition": requested,
                "resolved_condition": chosen.condition,
                "inventory_id": chosen.id,
            }
        },
    )
    return AllocatedUnit(part=part, inventory=chosen, requested_condition=requested, condition=chosen.condition)


def reserve_license(
    db: Session,
    software: SoftwareInventory,
    license_key: str | None = None,
    account_user: str | None = None,
) -> AllocatedLicense:
    """Find the license to activate for ``software``; the key wins over the account."""

    license_key = _clean(license_key)
    account_user = _clean(account_user)
    if not license_key and not account_user:
        raise LicenseIdentifierMissing(
            f"No license identifier provided for {software.label}",
            details={"software_inventory_id": software.id},
        )

    stmt = select(SoftwareLicense).where(SoftwareLicense.software_inventory_id == software.id)
    if license_key:
        stmt = stmt.where(SoftwareLicense.license_key == license_key)
    else:
        stmt = stmt.where(SoftwareLicense.account_user == account_user)
    stmt = stmt.order_by(SoftwareLicense.id).with_for_update().execution_options(populate_existing=True)
    license = db.execute(stmt).scalars().first()
    if license is None:
        raise LicenseNotFound(
            f"License not found for {software.label}",
            details={"license_key": license_key or None, "account_user": account_user or None},
        )
    if license.current_activations >= license.max_activations:
        raise LicenseExhausted(
            f"License has reached maximum activations ({license.max_activations})",
            details={
                "license_id": license.id,
                "current_activations": license.current_activations,
                "max_activations": license.max_activations,
            },
        )
    return AllocatedLicense(software=software, license=license)


def release_component(
    db: Session,
    hardware_part: HardwarePart,
    removal_condition: str | None,
    reason: str,
    actor_id: int | None,
    hardware: Hardware,
    *,
    clock: Clock | None = None,
) -> PartInventory:
    """Put one unit of a removed part back into stock under the mapped condition."""

    spec = PartSpec(
        part_type=hardware_part.part_type,
        brand=hardware_part.brand,
        model=hardware_part.model,
        specifications=hardware_part.specifications or "",
    )
    part = require_part(db, spec)
    condition = map_removal_condition(removal_condition)
    row = find_or_create_inventory(db, part.id, condition, clock=clock)
    return increment_inventory(
        db,
        row.id,
        1,
        reason,
        actor_id,
        EntityRef.hardware(hardware.id),
        clock=clock,
    )
