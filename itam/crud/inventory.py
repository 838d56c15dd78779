"""Inventory ledger: part stock by condition and license activation counts.

Every counter change is a single guarded ``UPDATE`` so the database decides
whether stock is still available at the moment of the write; a quantity read
earlier in the request is never trusted. Each change also appends an audit
entry with the counter value before and after.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.clock import Clock, SystemClock
from ..core.errors import (
    InsufficientStock,
    InvalidRequest,
    LicenseExhausted,
    LicenseIdentifierMissing,
    LicenseNotFound,
    NotFound,
    PartNotFound,
    SoftwareNotFound,
)
from ..db.session import transaction
from ..models.part import Part, PartInventory
from ..models.software import SoftwareInventory, SoftwareLicense
from ..schemas.inventory import LicenseCreate, LicenseUpdate
from ..schemas.validation import validated
from .activity_log import EntityRef, record_activity

logger = logging.getLogger("itam.ledger")

_default_clock = SystemClock()

AUTO_CREATED_REMARK = "Auto-created from hardware removal"


def _require_positive(qty: int) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise InvalidRequest(f"quantity must be a positive integer, got {qty!r}")
    return qty


def _fresh(db: Session, model, row_id: int):
    stmt = select(model).where(model.id == row_id).execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def _inventory_values(row: PartInventory, quantity: int) -> dict[str, object]:
    part = row.part
    return {
        "quantity": quantity,
        "condition": row.condition,
        "part_info": part.description if part else None,
    }


def _license_values(row: SoftwareLicense, activations: int) -> dict[str, object]:
    software = row.software
    return {
        "current_activations": activations,
        "max_activations": row.max_activations,
        "software_info": software.label if software else None,
        "license_key": row.license_key,
    }


def get_inventory(db: Session, inventory_id: int, *, for_update: bool = False) -> PartInventory | None:
    stmt = select(PartInventory).where(PartInventory.id == inventory_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt.execution_options(populate_existing=True)).scalar_one_or_none()


def list_part_inventory(db: Session, part_id: int) -> list[PartInventory]:
    stmt = select(PartInventory).where(PartInventory.part_id == part_id).order_by(PartInventory.id)
    return db.execute(stmt.execution_options(populate_existing=True)).scalars().all()


def available_quantity(db: Session, part_id: int) -> int:
    """Units of ``part_id`` in stock across every condition."""

    stmt = select(func.coalesce(func.sum(PartInventory.quantity), 0)).where(PartInventory.part_id == part_id)
    return int(db.execute(stmt).scalar_one())


def find_or_create_inventory(
    db: Session,
    part_id: int,
    condition: str,
    *,
    clock: Clock | None = None,
) -> PartInventory:
    """Return the stock row for ``(part_id, condition)``, creating an empty one if needed."""

    stmt = select(PartInventory).where(PartInventory.part_id == part_id, PartInventory.condition == condition)
    row = db.execute(stmt).scalar_one_or_none()
    if row is not None:
        return row

    if db.get(Part, part_id) is None:
        raise PartNotFound(f"Part not found: {part_id}")

    savepoint = db.begin_nested()
    try:
        row = PartInventory(
            part_id=part_id,
            condition=condition,
            quantity=0,
            location=None,
            unit_cost=None,
            remarks=AUTO_CREATED_REMARK,
            created_at=(clock or _default_clock).timestamp(),
        )
        db.add(row)
        db.flush()
        savepoint.commit()
    except IntegrityError:
        # Another transaction created the same (part, condition) row first.
        savepoint.rollback()
        logger.debug(
            "inventory.create_race",
            extra={"extra_data": {"part_id": part_id, "condition": condition}},
        )
        row = db.execute(stmt.execution_options(populate_existing=True)).scalar_one()
        return row

    logger.info(
        "inventory.created",
        extra={"extra_data": {"inventory_id": row.id, "part_id": part_id, "condition": condition}},
    )
    return row


def increment_inventory(
    db: Session,
    inventory_id: int,
    qty: int,
    reason: str,
    actor_id: int | None,
    context: EntityRef | None = None,
    *,
    clock: Clock | None = None,
) -> PartInventory:
    """Add ``qty`` units to an inventory row."""

    _require_positive(qty)
    clock = clock or _default_clock
    result = db.execute(
        update(PartInventory)
        .where(PartInventory.id == inventory_id)
        .values(quantity=PartInventory.quantity + qty, updated_at=clock.timestamp())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound(f"Inventory not found: {inventory_id}")

    row = _fresh(db, PartInventory, inventory_id)
    record_activity(
        db,
        EntityRef.part_inventory(row.id),
        "inventory_increment",
        actor_id,
        old_values=_inventory_values(row, row.quantity - qty),
        new_values=_inventory_values(row, row.quantity),
        remarks=reason,
        related=context,
        clock=clock,
    )
    return row


def decrement_inventory(
    db: Session,
    inventory_id: int,
    qty: int,
    reason: str,
    actor_id: int | None,
    context: EntityRef | None = None,
    *,
    clock: Clock | None = None,
) -> PartInventory:
    """Take ``qty`` units out of an inventory row; never drives stock negative."""

    _require_positive(qty)
    clock = clock or _default_clock
    result = db.execute(
        update(PartInventory)
        .where(PartInventory.id == inventory_id, PartInventory.quantity >= qty)
        .values(quantity=PartInventory.quantity - qty, updated_at=clock.timestamp())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        row = _fresh(db, PartInventory, inventory_id)
        if row is None:
            raise NotFound(f"Inventory not found: {inventory_id}")
        raise InsufficientStock(
            f"Insufficient stock for {row.part.description} ({row.condition}): "
            f"requested {qty}, available {row.quantity}",
            details={"inventory_id": inventory_id, "requested": qty, "available": row.quantity},
        )

    row = _fresh(db, PartInventory, inventory_id)
    record_activity(
        db,
        EntityRef.part_inventory(row.id),
        "inventory_decrement",
        actor_id,
        old_values=_inventory_values(row, row.quantity + qty),
        new_values=_inventory_values(row, row.quantity),
        remarks=reason,
        related=context,
        clock=clock,
    )
    return row


def increment_license_activation(
    db: Session,
    license_id: int,
    qty: int,
    reason: str,
    actor_id: int | None,
    context: EntityRef | None = None,
    *,
    clock: Clock | None = None,
) -> SoftwareLicense:
    """Consume ``qty`` activation slots; rejected before mutation when over the ceiling."""

    _require_positive(qty)
    clock = clock or _default_clock
    result = db.execute(
        update(SoftwareLicense)
        .where(
            SoftwareLicense.id == license_id,
            SoftwareLicense.current_activations + qty <= SoftwareLicense.max_activations,
        )
        .values(
            current_activations=SoftwareLicense.current_activations + qty,
            updated_at=clock.timestamp(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        row = _fresh(db, SoftwareLicense, license_id)
        if row is None:
            raise LicenseNotFound(f"License not found: {license_id}")
        raise LicenseExhausted(
            f"License has reached maximum activations ({row.max_activations})",
            details={
                "license_id": license_id,
                "current_activations": row.current_activations,
                "max_activations": row.max_activations,
            },
        )

    row = _fresh(db, SoftwareLicense, license_id)
    record_activity(
        db,
        EntityRef.software_license(row.id),
        "license_activated",
        actor_id,
        old_values=_license_values(row, row.current_activations - qty),
        new_values=_license_values(row, row.current_activations),
        remarks=reason,
        related=context,
        clock=clock,
    )
    return row


def decrement_license_activation(
    db: Session,
    license_id: int,
    qty: int,
    reason: str,
    actor_id: int | None,
    context: EntityRef | None = None,
    *,
    clock: Clock | None = None,
) -> SoftwareLicense:
    """Release ``qty`` activation slots, clamping at zero.

    Releasing more than is held is reported as a warning and flagged in the
    audit entry, not raised.
    """

    _require_positive(qty)
    clock = clock or _default_clock
    before = _fresh(db, SoftwareLicense, license_id)
    if before is None:
        raise LicenseNotFound(f"License not found: {license_id}")
    previous = before.current_activations or 0

    db.execute(
        update(SoftwareLicense)
        .where(SoftwareLicense.id == license_id)
        .values(
            current_activations=case(
                (SoftwareLicense.current_activations >= qty, SoftwareLicense.current_activations - qty),
                else_=0,
            ),
            updated_at=clock.timestamp(),
        )
        .execution_options(synchronize_session=False)
    )
    row = _fresh(db, SoftwareLicense, license_id)
    clamped = previous < qty
    if clamped:
        logger.warning(
            "license.release_clamped",
            extra={
                "extra_data": {
                    "license_id": license_id,
                    "requested": qty,
                    "held": previous,
                }
            },
        )
    record_activity(
        db,
        EntityRef.software_license(row.id),
        "license_deactivated",
        actor_id,
        old_values=_license_values(row, previous),
        new_values=_license_values(row, row.current_activations),
        remarks=reason,
        related=context,
        metadata={"clamped": True, "requested": qty} if clamped else None,
        clock=clock,
    )
    return row


_LICENSE_AUDITED = ("license_key", "account_user", "max_activations", "remarks")


def _require_identifier(license_key: str | None, account_user: str | None, software_id: int) -> None:
    if not license_key and not account_user:
        raise LicenseIdentifierMissing(
            "A license needs a license key or an account user",
            details={"software_inventory_id": software_id},
        )


def create_license(
    db: Session,
    payload: LicenseCreate | Mapping[str, Any],
    actor_id: int | None,
    *,
    clock: Clock | None = None,
) -> SoftwareLicense:
    """Register a license for a title with no activations in use."""

    clock = clock or _default_clock
    data = validated(LicenseCreate, payload, "license")
    _require_identifier(data.license_key, data.account_user, data.software_inventory_id)

    with transaction(db):
        software = db.get(SoftwareInventory, data.software_inventory_id)
        if software is None:
            raise SoftwareNotFound(f"Software not found: {data.software_inventory_id}")
        row = SoftwareLicense(
            **data.model_dump(),
            current_activations=0,
            created_at=clock.timestamp(),
        )
        db.add(row)
        db.flush()
        record_activity(
            db,
            EntityRef.software_license(row.id),
            "license_created",
            actor_id,
            new_values={key: getattr(row, key) for key in _LICENSE_AUDITED},
            remarks=f"License added for {software.label}",
            clock=clock,
        )
    return row


def update_license(
    db: Session,
    license_id: int,
    payload: LicenseUpdate | Mapping[str, Any],
    actor_id: int | None,
    *,
    clock: Clock | None = None,
) -> SoftwareLicense:
    """Edit identifiers, ceiling or remarks. Activation counts only move through the ledger."""

    clock = clock or _default_clock
    changes = validated(LicenseUpdate, payload, "license update").model_dump(exclude_unset=True)
    if "max_activations" in changes and changes["max_activations"] is None:
        del changes["max_activations"]

    with transaction(db):
        row = _fresh(db, SoftwareLicense, license_id)
        if row is None:
            raise LicenseNotFound(f"License not found: {license_id}")
        _require_identifier(
            changes.get("license_key", row.license_key),
            changes.get("account_user", row.account_user),
            row.software_inventory_id,
        )
        ceiling = changes.get("max_activations")
        if ceiling is not None and ceiling < (row.current_activations or 0):
            raise InvalidRequest(
                f"max_activations cannot drop below the {row.current_activations} activation(s) in use",
                details={"license_id": license_id, "current_activations": row.current_activations},
            )

        old_values: dict[str, Any] = {}
        new_values: dict[str, Any] = {}
        for key, value in changes.items():
            if getattr(row, key) == value:
                continue
            if key in _LICENSE_AUDITED:
                old_values[key] = getattr(row, key)
                new_values[key] = value
            setattr(row, key, value)
        if not new_values and "account_password" not in changes:
            return row
        row.updated_at = clock.timestamp()
        db.flush()
        record_activity(
            db,
            EntityRef.software_license(row.id),
            "license_updated",
            actor_id,
            old_values=old_values,
            new_values=new_values,
            metadata={"password_changed": True} if "account_password" in changes else None,
            clock=clock,
        )
    return row
