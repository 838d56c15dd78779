"""Append-only audit log.

Entries point at the entity they describe through an :class:`EntityRef`, a
``(kind, id)`` pair over a closed set of entity kinds. The optional
``related`` reference names the entity that gave the change its context, such
as the hardware unit a stock movement was made for.

Writers only ``add`` and ``flush``: the entry becomes durable when the caller's
transaction commits and disappears with it on rollback. Entries are never
updated or deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy import and_, desc, func, or_, select
from sqlalchemy.orm import Session

from ..core.clock import Clock, SystemClock
from ..models.activity_log import ActivityLog
from ..models.part import HardwarePart
from ..models.software import HardwareSoftware
from ..schemas.activity_log import ActivityLogOut


class EntityKind(str, Enum):
    HARDWARE = "hardware"
    HARDWARE_PART = "hardware_part"
    HARDWARE_SOFTWARE = "hardware_software"
    PART = "part"
    PART_INVENTORY = "part_inventory"
    SOFTWARE_INVENTORY = "software_inventory"
    SOFTWARE_LICENSE = "software_license"
    ISSUANCE = "issuance"
    ACKNOWLEDGEMENT = "acknowledgement"
    PRINTER = "printer"
    CCTV = "cctv"


@dataclass(frozen=True)
class EntityRef:
    kind: EntityKind
    id: int

    def __post_init__(self) -> None:
        if not isinstance(self.kind, EntityKind):
            object.__setattr__(self, "kind", EntityKind(self.kind))
        if not isinstance(self.id, int) or self.id <= 0:
            raise ValueError(f"entity id must be a positive integer, got {self.id!r}")

    @classmethod
    def hardware(cls, id: int) -> "EntityRef":
        return cls(EntityKind.HARDWARE, id)

    @classmethod
    def hardware_part(cls, id: int) -> "EntityRef":
        return cls(EntityKind.HARDWARE_PART, id)

    @classmethod
    def hardware_software(cls, id: int) -> "EntityRef":
        return cls(EntityKind.HARDWARE_SOFTWARE, id)

    @classmethod
    def part_inventory(cls, id: int) -> "EntityRef":
        return cls(EntityKind.PART_INVENTORY, id)

    @classmethod
    def software_license(cls, id: int) -> "EntityRef":
        return cls(EntityKind.SOFTWARE_LICENSE, id)

    @classmethod
    def issuance(cls, id: int) -> "EntityRef":
        return cls(EntityKind.ISSUANCE, id)

    @classmethod
    def acknowledgement(cls, id: int) -> "EntityRef":
        return cls(EntityKind.ACKNOWLEDGEMENT, id)

    @classmethod
    def printer(cls, id: int) -> "EntityRef":
        return cls(EntityKind.PRINTER, id)

    @classmethod
    def cctv(cls, id: int) -> "EntityRef":
        return cls(EntityKind.CCTV, id)

    @classmethod
    def of(cls, log: ActivityLog) -> "EntityRef":
        return cls(EntityKind(log.loggable_type), log.loggable_id)

    def __str__(self) -> str:
        return f"{self.kind.value}#{self.id}"


_default_clock = SystemClock()


def record_activity(
    db: Session,
    entity: EntityRef,
    action_type: str,
    actor_id: int | None,
    *,
    old_values: Mapping[str, Any] | None = None,
    new_values: Mapping[str, Any] | None = None,
    remarks: str | None = None,
    related: EntityRef | None = None,
    metadata: Mapping[str, Any] | None = None,
    clock: Clock | None = None,
) -> ActivityLog:
    """Append an audit entry inside the caller's transaction."""

    if not action_type:
        raise ValueError("action_type is required")
    entry = ActivityLog(
        loggable_type=entity.kind.value,
        loggable_id=entity.id,
        action_type=action_type,
        action_by=actor_id,
        action_at=(clock or _default_clock).timestamp(),
        old_values=dict(old_values) if old_values is not None else None,
        new_values=dict(new_values) if new_values is not None else None,
        remarks=remarks,
        related_type=related.kind.value if related else None,
        related_id=related.id if related else None,
        meta=dict(metadata) if metadata is not None else None,
    )
    db.add(entry)
    db.flush()
    return entry


def _newest_first(stmt, limit: int | None, offset: int):
    stmt = stmt.order_by(desc(ActivityLog.action_at), desc(ActivityLog.id)).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


def list_entity_logs(
    db: Session,
    entity: EntityRef,
    limit: int | None = 100,
    offset: int = 0,
    action_type: str | None = None,
) -> list[ActivityLog]:
    """Entries recorded against ``entity``, newest first."""

    stmt = select(ActivityLog).where(
        ActivityLog.loggable_type == entity.kind.value,
        ActivityLog.loggable_id == entity.id,
    )
    if action_type:
        stmt = stmt.where(ActivityLog.action_type == action_type)
    return db.execute(_newest_first(stmt, limit, offset)).scalars().all()


def list_hardware_logs(
    db: Session,
    hardware_id: int,
    limit: int | None = 100,
    offset: int = 0,
) -> list[ActivityLog]:
    """Everything that happened to a hardware unit.

    Includes entries on the unit itself, on its currently installed parts and
    software, and entries on other entities (inventory, licenses, issuances)
    made in the unit's context.
    """

    part_ids = db.execute(select(HardwarePart.id).where(HardwarePart.hardware_id == hardware_id)).scalars().all()
    software_ids = db.execute(
        select(HardwareSoftware.id).where(HardwareSoftware.hardware_id == hardware_id)
    ).scalars().all()

    clauses = [
        and_(ActivityLog.loggable_type == EntityKind.HARDWARE.value, ActivityLog.loggable_id == hardware_id),
        and_(ActivityLog.related_type == EntityKind.HARDWARE.value, ActivityLog.related_id == hardware_id),
    ]
    if part_ids:
        clauses.append(
            and_(ActivityLog.loggable_type == EntityKind.HARDWARE_PART.value, ActivityLog.loggable_id.in_(part_ids))
        )
    if software_ids:
        clauses.append(
            and_(
                ActivityLog.loggable_type == EntityKind.HARDWARE_SOFTWARE.value,
                ActivityLog.loggable_id.in_(software_ids),
            )
        )
    stmt = select(ActivityLog).where(or_(*clauses))
    return db.execute(_newest_first(stmt, limit, offset)).scalars().all()


def count_logs(db: Session, entity: EntityRef | None = None) -> int:
    stmt = select(func.count(ActivityLog.id))
    if entity is not None:
        stmt = stmt.where(
            ActivityLog.loggable_type == entity.kind.value,
            ActivityLog.loggable_id == entity.id,
        )
    return int(db.execute(stmt).scalar_one())


def action_label(action_type: str) -> str:
    return action_type.replace("_", " ").strip().title()


def format_logs(
    logs: Iterable[ActivityLog],
    resolve_name: Callable[[int], str | None] | None = None,
) -> list[ActivityLogOut]:
    """Turn entries into display models, resolving actor names once per id."""

    names: dict[int, str] = {}

    def name_for(actor_id: int | None) -> str:
        if actor_id is None or resolve_name is None:
            return "N/A"
        if actor_id not in names:
            names[actor_id] = resolve_name(actor_id) or "N/A"
        return names[actor_id]

    return [
        ActivityLogOut(
            id=log.id,
            loggable_type=log.loggable_type,
            loggable_id=log.loggable_id,
            action_type=log.action_type,
            action_label=action_label(log.action_type),
            action_by=log.action_by,
            action_by_name=name_for(log.action_by),
            action_at=log.action_at,
            old_values=log.old_values,
            new_values=log.new_values,
            remarks=log.remarks,
            related_type=log.related_type,
            related_id=log.related_id,
            metadata=log.meta,
        )
        for log in logs
    ]
