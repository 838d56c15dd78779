from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import desc, select
from sqlalchemy.orm import Session, selectinload

from ..core.clock import Clock, SystemClock
from ..core.errors import InvalidRequest, NotFound
from ..core.hostnames import hostname_aliases, normalize_hostname
from ..db.session import transaction
from ..models.hardware import Hardware
from ..schemas.hardware import HardwareCreate, HardwareUpdate
from ..schemas.validation import validated
from ..settings import settings
from .activity_log import EntityRef, record_activity

_default_clock = SystemClock()

ASSIGNMENT_FIELDS = ("issued_to", "location", "date_issued")
_READ_ONLY = {"id", "created_at", "created_by", "parts", "software"}


def _with_components(stmt):
    return stmt.options(selectinload(Hardware.parts), selectinload(Hardware.software))


def list_hardware(db: Session, limit: int = 100, offset: int = 0) -> list[Hardware]:
    """
    Return hardware ordered by created_at (desc) with pagination.
    """
    stmt = select(Hardware).order_by(desc(Hardware.created_at), desc(Hardware.id)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_hardware(db: Session, hardware_id: int, *, with_components: bool = False) -> Hardware | None:
    """
    Fetch a single hardware unit, optionally reloading its parts and software.
    """
    stmt = select(Hardware).where(Hardware.id == hardware_id)
    if with_components:
        stmt = _with_components(stmt).execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def require_hardware(db: Session, hardware_id: int, *, with_components: bool = False) -> Hardware:
    hardware = get_hardware(db, hardware_id, with_components=with_components)
    if hardware is None:
        raise NotFound(f"Hardware not found: {hardware_id}")
    return hardware


def get_hardware_by_hostname(db: Session, hostname: str) -> Hardware | None:
    """
    Look a unit up by hostname, tolerating case, whitespace and domain suffixes.
    """
    aliases = hostname_aliases(hostname, settings.HOSTNAME_DOMAINS)
    if not aliases:
        return None
    stmt = select(Hardware).where(Hardware.hostname.in_(aliases)).order_by(Hardware.id)
    return db.execute(stmt).scalars().first()


def create_hardware(
    db: Session,
    payload: HardwareCreate | Mapping[str, Any],
    actor_id: int | None = None,
    *,
    clock: Clock | None = None,
) -> Hardware:
    """
    Create and persist a hardware unit from a payload dict.
    """
    clock = clock or _default_clock
    data = validated(HardwareCreate, payload, "hardware").model_dump(exclude_unset=True)
    hostname = normalize_hostname(data.get("hostname"), settings.HOSTNAME_DOMAINS)
    if not hostname:
        raise InvalidRequest("hostname is required for hardware")
    for key, value in list(data.items()):
        if isinstance(value, str):
            data[key] = value.strip() or None
    data["hostname"] = hostname
    data["created_at"] = clock.timestamp()
    data["created_by"] = actor_id

    with transaction(db):
        if get_hardware_by_hostname(db, hostname) is not None:
            raise InvalidRequest(f"Hostname already exists: {hostname}")
        obj = Hardware(**{k: v for k, v in data.items() if hasattr(Hardware, k)})
        db.add(obj)
        db.flush()
        record_activity(
            db,
            EntityRef.hardware(obj.id),
            "hardware_created",
            actor_id,
            new_values={"hostname": obj.hostname, "category": obj.category, "location": obj.location},
            clock=clock,
        )
    return obj


def _apply_fields(
    db: Session,
    hardware: Hardware,
    fields: Mapping[str, Any],
    actor_id: int | None,
    action_type: str,
    clock: Clock,
) -> Hardware:
    old_values: dict[str, Any] = {}
    new_values: dict[str, Any] = {}
    for key, value in fields.items():
        # Unknown keys are ignored so callers with stale fields do not break.
        if key in _READ_ONLY or not hasattr(hardware, key):
            continue
        if key == "hostname":
            value = normalize_hostname(value, settings.HOSTNAME_DOMAINS)
            if not value:
                raise InvalidRequest("hostname cannot be blank")
        elif isinstance(value, str):
            value = value.strip() or None
        current = getattr(hardware, key)
        if current == value:
            continue
        old_values[key] = current
        new_values[key] = value
        setattr(hardware, key, value)

    if new_values:
        hardware.updated_by = actor_id
        hardware.updated_at = clock.timestamp()
        db.flush()
        record_activity(
            db,
            EntityRef.hardware(hardware.id),
            action_type,
            actor_id,
            old_values=old_values,
            new_values=new_values,
            clock=clock,
        )
    return hardware


def update_hardware(
    db: Session,
    hardware_id: int,
    payload: HardwareUpdate | Mapping[str, Any],
    actor_id: int | None,
    *,
    clock: Clock | None = None,
) -> Hardware:
    """
    Update descriptive fields in place; writes one ``hardware_updated`` entry.
    """
    clock = clock or _default_clock
    fields = validated(HardwareUpdate, payload, "hardware update").model_dump(exclude_unset=True)
    with transaction(db):
        hardware = require_hardware(db, hardware_id)
        _apply_fields(db, hardware, fields, actor_id, "hardware_updated", clock)
    return hardware


def update_hardware_assignment(
    db: Session,
    hardware_id: int,
    fields: Mapping[str, Any],
    actor_id: int | None,
    *,
    clock: Clock | None = None,
) -> Hardware:
    """
    Change who holds a unit and where it is. Only ``issued_to``, ``location``
    and ``date_issued`` are accepted.
    """
    unexpected = set(fields) - set(ASSIGNMENT_FIELDS)
    if unexpected:
        raise InvalidRequest(f"Unsupported assignment fields: {', '.join(sorted(unexpected))}")
    clock = clock or _default_clock
    with transaction(db):
        hardware = require_hardware(db, hardware_id)
        _apply_fields(db, hardware, fields, actor_id, "hardware_assigned", clock)
    return hardware
