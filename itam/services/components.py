"""Install and remove parts and software on a hardware unit.

``ComponentService`` owns the four primitives (install/remove for parts,
install/uninstall for software) and the add/replace/remove composites built on
them. Primitives join whatever transaction the caller has open; composites
open one, so a failure at any step rolls back every inventory change and audit
entry made during the call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..core.clock import Clock, SystemClock
from ..core.conditions import map_removal_condition, resolve_install_condition
from ..core.context import log_context
from ..core.errors import InvalidRequest, NotFound
from ..crud.activity_log import EntityRef, record_activity
from ..crud.hardware import require_hardware
from ..crud.inventory import decrement_inventory, decrement_license_activation, increment_license_activation
from ..db.session import transaction
from ..models.hardware import Hardware
from ..models.issuance import Issuance
from ..models.part import HardwarePart
from ..models.software import HardwareSoftware
from ..schemas.components import (
    ComponentOperation,
    ComponentRemoval,
    ComponentType,
    OperationType,
    PartEdit,
    PartInstall,
    SoftwareEdit,
    SoftwareInstall,
)
from ..schemas.validation import validated
from ..settings import settings
from .allocator import release_component, require_software, reserve_component, reserve_license

logger = logging.getLogger("itam.components")

PART_INSTALLED = "installed"
PART_REMOVED = "Removed"
SOFTWARE_ACTIVE = "Active"
SOFTWARE_UNINSTALLED = "Uninstalled"


def build_removal_remarks(reason: str | None, condition: str | None, remarks: str | None) -> str | None:
    """``Reason: x | Condition: y | Remarks: z`` with empty parts left out."""

    pieces = []
    for label, value in (("Reason", reason), ("Condition", condition), ("Remarks", remarks)):
        value = (value or "").strip()
        if value:
            pieces.append(f"{label}: {value}")
    return " | ".join(pieces) or None


def parse_operation(data: ComponentOperation | Mapping[str, Any]) -> ComponentOperation:
    return validated(ComponentOperation, data, "component operation")


@dataclass
class ComponentChange:
    """What one add/replace/remove did, in the shape issuance details record."""

    hardware: Hardware
    operation: OperationType
    component_type: ComponentType
    old_component_id: int | None = None
    old_condition: str | None = None
    old_data: dict[str, Any] | None = None
    new_component_id: int | None = None
    new_condition: str | None = None
    new_data: dict[str, Any] | None = None


class ComponentService:
    def __init__(self, db: Session, clock: Clock | None = None, logger_: logging.Logger | None = None) -> None:
        self.db = db
        self.clock = clock or SystemClock()
        self.log = logger_ or logger

    # Parts

    def install_part(
        self,
        hardware: Hardware,
        part_data: PartInstall | Mapping[str, Any],
        actor_id: int | None,
    ) -> HardwarePart:
        """Draw one unit from stock and record it as installed on ``hardware``."""

        data = validated(PartInstall, part_data, "part")
        desired = resolve_install_condition(
            data.condition,
            settings.INVENTORY_CONDITIONS,
            settings.DEFAULT_INSTALL_CONDITION,
        )
        unit = reserve_component(self.db, data, desired)
        part = unit.part
        now = self.clock.timestamp()

        installed = HardwarePart(
            hardware_id=hardware.id,
            part_type=part.part_type,
            brand=part.brand,
            model=part.model,
            specifications=part.specifications,
            serial_number=(data.serial_number or "").strip() or None,
            condition=unit.condition,
            source_inventory_id=unit.inventory.id,
            status=PART_INSTALLED,
            installed_date=now,
            remarks=data.remarks,
            created_by=actor_id,
        )
        self.db.add(installed)
        self.db.flush()

        decrement_inventory(
            self.db,
            unit.inventory.id,
            1,
            f"Installed on {hardware.label}",
            actor_id,
            EntityRef.hardware(hardware.id),
            clock=self.clock,
        )
        record_activity(
            self.db,
            EntityRef.hardware(hardware.id),
            "part_added",
            actor_id,
            new_values=installed.snapshot(),
            remarks=f"Added {installed.description} ({unit.condition})",
            related=EntityRef.hardware_part(installed.id),
            metadata={"requested_condition": unit.requested_condition} if unit.fell_back else None,
            clock=self.clock,
        )
        self.log.info(
            "component.part_installed",
            extra={
                "extra_data": {
                    "hardware_id": hardware.id,
                    "hardware_part_id": installed.id,
                    "inventory_id": unit.inventory.id,
                    "condition": unit.condition,
                }
            },
        )
        return installed

    def _installed_part(self, hardware: Hardware, part_id: int) -> HardwarePart:
        part = self.db.execute(
            select(HardwarePart).where(HardwarePart.id == part_id, HardwarePart.hardware_id == hardware.id)
        ).scalar_one_or_none()
        if part is None:
            raise NotFound(f"Installed part not found: {part_id} on {hardware.hostname}")
        return part

    def remove_part(
        self,
        hardware: Hardware,
        removal_data: ComponentRemoval | Mapping[str, Any],
        actor_id: int | None,
    ) -> dict[str, Any]:
        """Return an installed part to stock and delete its row.

        The audit entry is written first, while the row still describes the
        part that was on the unit. Returns the snapshot taken before removal.
        """

        data = validated(ComponentRemoval, removal_data, "component removal")
        part = self._installed_part(hardware, data.id)
        condition = map_removal_condition(data.condition)
        snapshot = part.snapshot()
        remarks = build_removal_remarks(data.reason, data.condition, data.remarks)

        record_activity(
            self.db,
            EntityRef.hardware(hardware.id),
            "part_removed",
            actor_id,
            old_values=snapshot,
            new_values={"status": PART_REMOVED, "returned_condition": condition},
            remarks=remarks,
            related=EntityRef.hardware_part(part.id),
            clock=self.clock,
        )

        reason = f"Removed from {hardware.label}. Reason: {data.reason or 'N/A'}. Condition: {condition}"
        inventory = release_component(
            self.db,
            part,
            data.condition,
            reason,
            actor_id,
            hardware,
            clock=self.clock,
        )

        part.status = PART_REMOVED
        part.removed_date = self.clock.timestamp()
        part.remarks = remarks
        part.updated_by = actor_id
        self.db.flush()
        self.db.delete(part)
        self.db.flush()
        self.db.expire(hardware, ["parts"])

        snapshot["returned_inventory_id"] = inventory.id
        snapshot["returned_condition"] = condition
        self.log.info(
            "component.part_removed",
            extra={
                "extra_data": {
                    "hardware_id": hardware.id,
                    "hardware_part_id": snapshot["id"],
                    "inventory_id": inventory.id,
                    "condition": condition,
                }
            },
        )
        return snapshot

    def update_part(
        self,
        hardware: Hardware,
        part_id: int,
        changes: PartEdit | Mapping[str, Any],
        actor_id: int | None,
    ) -> HardwarePart:
        """Edit the serial number or remarks of an installed part."""

        data = validated(PartEdit, changes, "part edit")
        part = self._installed_part(hardware, part_id)
        old_values: dict[str, Any] = {}
        new_values: dict[str, Any] = {}
        for key, value in data.model_dump(exclude_unset=True).items():
            if getattr(part, key) != value:
                old_values[key] = getattr(part, key)
                new_values[key] = value
                setattr(part, key, value)
        if not new_values:
            return part
        part.updated_by = actor_id
        self.db.flush()
        record_activity(
            self.db,
            EntityRef.hardware(hardware.id),
            "part_updated",
            actor_id,
            old_values=old_values,
            new_values=new_values,
            remarks=f"Updated {part.description}",
            related=EntityRef.hardware_part(part.id),
            clock=self.clock,
        )
        return part

    # Software

    def install_software(
        self,
        hardware: Hardware,
        software_data: SoftwareInstall | Mapping[str, Any],
        actor_id: int | None,
    ) -> HardwareSoftware:
        """Install a title, consuming a license activation when the title tracks keys."""

        data = validated(SoftwareInstall, software_data, "software")
        software = require_software(self.db, data.software_name, data.software_type, data.version)

        license_id = None
        if software.requires_key_tracking:
            allocated = reserve_license(self.db, software, data.license_key, data.account_user)
            increment_license_activation(
                self.db,
                allocated.license.id,
                1,
                f"Activated license for {software.software_name} on {hardware.label}",
                actor_id,
                EntityRef.hardware(hardware.id),
                clock=self.clock,
            )
            license_id = allocated.license.id

        installed = HardwareSoftware(
            hardware_id=hardware.id,
            software_inventory_id=software.id,
            software_license_id=license_id,
            status=SOFTWARE_ACTIVE,
            installation_date=self.clock.timestamp(),
            installed_by=actor_id,
            remarks=data.remarks,
        )
        self.db.add(installed)
        self.db.flush()

        record_activity(
            self.db,
            EntityRef.hardware(hardware.id),
            "software_installed",
            actor_id,
            new_values=installed.snapshot(),
            remarks=f"Installed {software.label}",
            related=EntityRef.hardware_software(installed.id),
            clock=self.clock,
        )
        self.log.info(
            "component.software_installed",
            extra={
                "extra_data": {
                    "hardware_id": hardware.id,
                    "hardware_software_id": installed.id,
                    "software_license_id": license_id,
                }
            },
        )
        return installed

    def _installed_software(self, hardware: Hardware, software_id: int) -> HardwareSoftware:
        installed = self.db.execute(
            select(HardwareSoftware).where(
                HardwareSoftware.id == software_id,
                HardwareSoftware.hardware_id == hardware.id,
            )
        ).scalar_one_or_none()
        if installed is None:
            raise NotFound(f"Installed software not found: {software_id} on {hardware.hostname}")
        return installed

    def uninstall_software(
        self,
        hardware: Hardware,
        removal_data: ComponentRemoval | Mapping[str, Any],
        actor_id: int | None,
    ) -> dict[str, Any]:
        """Release the license (if any) and delete the installed-software row."""

        data = validated(ComponentRemoval, removal_data, "component removal")
        installed = self._installed_software(hardware, data.id)
        snapshot = installed.snapshot()
        remarks = build_removal_remarks(data.reason, None, data.remarks)
        name = snapshot["software_name"] or "software"

        record_activity(
            self.db,
            EntityRef.hardware(hardware.id),
            "software_uninstalled",
            actor_id,
            old_values=snapshot,
            new_values={"status": SOFTWARE_UNINSTALLED},
            remarks=remarks,
            related=EntityRef.hardware_software(installed.id),
            clock=self.clock,
        )

        license = installed.license
        if license is not None and (license.current_activations or 0) > 0:
            decrement_license_activation(
                self.db,
                license.id,
                1,
                f"Uninstalled {name} from {hardware.label}. Reason: {data.reason or 'N/A'}",
                actor_id,
                EntityRef.hardware(hardware.id),
                clock=self.clock,
            )

        installed.status = SOFTWARE_UNINSTALLED
        installed.uninstall_date = self.clock.timestamp()
        installed.remarks = remarks
        self.db.flush()
        self.db.delete(installed)
        self.db.flush()
        self.db.expire(hardware, ["software"])

        self.log.info(
            "component.software_uninstalled",
            extra={"extra_data": {"hardware_id": hardware.id, "hardware_software_id": snapshot["id"]}},
        )
        return snapshot

    def update_software(
        self,
        hardware: Hardware,
        software_id: int,
        changes: SoftwareEdit | Mapping[str, Any],
        actor_id: int | None,
    ) -> HardwareSoftware:
        data = validated(SoftwareEdit, changes, "software edit")
        installed = self._installed_software(hardware, software_id)
        if "remarks" not in data.model_fields_set or installed.remarks == data.remarks:
            return installed
        old = installed.remarks
        installed.remarks = data.remarks
        self.db.flush()
        record_activity(
            self.db,
            EntityRef.hardware(hardware.id),
            "software_updated",
            actor_id,
            old_values={"remarks": old},
            new_values={"remarks": data.remarks},
            related=EntityRef.hardware_software(installed.id),
            clock=self.clock,
        )
        return installed

    # Composites

    def apply(
        self,
        request: ComponentOperation | Mapping[str, Any],
        actor_id: int | None,
        hardware: Hardware | None = None,
    ) -> ComponentChange:
        """Run one add/replace/remove and describe what changed.

        Replace removes the old component before installing the new one; both
        halves share the caller's transaction.
        """

        op = parse_operation(request)
        with transaction(self.db):
            if hardware is None or hardware.id != op.hardware_id:
                hardware = require_hardware(self.db, op.hardware_id)
            change = ComponentChange(hardware=hardware, operation=op.operation, component_type=op.component_type)
            is_part = op.component_type is ComponentType.PART

            if op.operation in (OperationType.REMOVE, OperationType.REPLACE):
                removal = op.removal()
                if is_part:
                    old = self.remove_part(hardware, removal, actor_id)
                    change.old_condition = old["returned_condition"]
                else:
                    old = self.uninstall_software(hardware, removal, actor_id)
                change.old_component_id = old["id"]
                change.old_data = old

            if op.operation in (OperationType.ADD, OperationType.REPLACE):
                if is_part:
                    new = self.install_part(hardware, op.part_install(), actor_id)
                    change.new_condition = new.condition
                else:
                    new = self.install_software(hardware, op.software_install(), actor_id)
                change.new_component_id = new.id
                change.new_data = new.snapshot()
        return change

    def _composite(self, request, actor_id: int | None, expected: OperationType) -> Hardware:
        op = parse_operation(request)
        if op.operation is not expected:
            raise InvalidRequest(f"Expected a {expected.value} operation, got {op.operation.value}")
        with log_context(f"component.{expected.value}", actor_id):
            change = self.apply(op, actor_id)
            return require_hardware(self.db, change.hardware.id, with_components=True)

    def add_component(self, request: ComponentOperation | Mapping[str, Any], actor_id: int | None) -> Hardware:
        return self._composite(request, actor_id, OperationType.ADD)

    def remove_component(self, request: ComponentOperation | Mapping[str, Any], actor_id: int | None) -> Hardware:
        return self._composite(request, actor_id, OperationType.REMOVE)

    def replace_component(self, request: ComponentOperation | Mapping[str, Any], actor_id: int | None) -> Hardware:
        return self._composite(request, actor_id, OperationType.REPLACE)

    def sync_components(
        self,
        hardware_id: int,
        parts: Iterable[Mapping[str, Any]] = (),
        software: Iterable[Mapping[str, Any]] = (),
        actor_id: int | None = None,
    ) -> Hardware:
        """Apply a full component form in one transaction.

        Each entry flagged ``_delete`` is removed, an entry with an ``id`` is
        edited in place, and anything else is installed.
        """

        with log_context("component.sync", actor_id):
            with transaction(self.db):
                hardware = require_hardware(self.db, hardware_id)
                for entry in parts:
                    entry = dict(entry)
                    if entry.get("_delete"):
                        self.remove_part(hardware, _removal_from_entry(entry), actor_id)
                    elif entry.get("id"):
                        self.update_part(hardware, entry["id"], _pick(entry, ("serial_number", "remarks")), actor_id)
                    else:
                        self.install_part(hardware, entry, actor_id)
                for entry in software:
                    entry = dict(entry)
                    if entry.get("_delete"):
                        self.uninstall_software(hardware, _removal_from_entry(entry), actor_id)
                    elif entry.get("id"):
                        self.update_software(hardware, entry["id"], _pick(entry, ("remarks",)), actor_id)
                    else:
                        self.install_software(hardware, entry, actor_id)
            return require_hardware(self.db, hardware_id, with_components=True)

    def delete_hardware(self, hardware_id: int, actor_id: int | None, reason: str | None = None) -> dict[str, Any]:
        """Retire a unit and everything installed on it.

        Every part goes back to stock as Working and every license activation
        is released before the unit is deleted. Issuances keep their number
        and hostname but no longer point at the unit. One transaction.
        """

        reason = reason or "Hardware deleted"
        with log_context("hardware.delete", actor_id):
            with transaction(self.db):
                hardware = require_hardware(self.db, hardware_id, with_components=True)
                snapshot = {
                    "hostname": hardware.hostname,
                    "category": hardware.category,
                    "serial_number": hardware.serial_number,
                    "issued_to": hardware.issued_to,
                    "location": hardware.location,
                }
                parts = [
                    self.remove_part(hardware, ComponentRemoval(id=part.id, condition="working", reason=reason), actor_id)
                    for part in list(hardware.parts)
                ]
                software = [
                    self.uninstall_software(hardware, ComponentRemoval(id=item.id, reason=reason), actor_id)
                    for item in list(hardware.software)
                ]
                self.db.execute(update(Issuance).where(Issuance.hardware_id == hardware.id).values(hardware_id=None))
                record_activity(
                    self.db,
                    EntityRef.hardware(hardware.id),
                    "hardware_deleted",
                    actor_id,
                    old_values={**snapshot, "parts": len(parts), "software": len(software)},
                    remarks=reason,
                    clock=self.clock,
                )
                self.db.delete(hardware)
                self.db.flush()

        summary = {
            "hardware_id": hardware_id,
            "hostname": snapshot["hostname"],
            "returned_parts": [item["id"] for item in parts],
            "released_software": [item["id"] for item in software],
        }
        self.log.info("hardware.deleted", extra={"extra_data": summary})
        return summary


def _pick(entry: Mapping[str, Any], keys: Iterable[str]) -> dict[str, Any]:
    return {key: entry[key] for key in keys if key in entry}


def _removal_from_entry(entry: Mapping[str, Any]) -> ComponentRemoval:
    if not entry.get("id"):
        raise InvalidRequest("id is required to remove a component")
    return ComponentRemoval(
        id=entry["id"],
        condition=entry.get("removal_condition") or entry.get("condition"),
        reason=entry.get("removal_reason") or entry.get("reason"),
        remarks=entry.get("remarks"),
    )
