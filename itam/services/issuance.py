"""Issuances and their acknowledgements.

This is the outer boundary of the core. ``process_component_maintenance`` and
``create_whole_unit_issuance`` never raise: every exception, expected or not,
becomes an :class:`~itam.core.errors.IssuanceResult`, so the caller always gets
``success``/``message`` back. ``acknowledge`` reports its expected conflicts
(already acknowledged, wrong employee) the same way.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.clock import Clock, SystemClock
from ..core.context import log_context
from ..core.errors import InvalidRequest, IssuanceResult, ItamError, NotFound
from ..crud.activity_log import EntityRef, record_activity
from ..crud.hardware import get_hardware_by_hostname, require_hardware, update_hardware_assignment
from ..db.session import transaction
from ..models.hardware import Hardware
from ..models.issuance import (
    Acknowledgement,
    AcknowledgementStatus,
    ComponentIssuanceDetail,
    Issuance,
    IssuanceType,
)
from ..schemas.components import ComponentOperation, ComponentType, OperationType
from ..schemas.issuance import WholeUnitIssuanceRequest
from ..schemas.validation import validated
from .components import ComponentChange, ComponentService, parse_operation
from .issuance_numbers import next_issuance_number

logger = logging.getLogger("itam.issuance")

AssignmentUpdater = Callable[..., Any]

ACKNOWLEDGED_REMARK = "Acknowledged via system"

_OPERATIONS = {item.value for item in OperationType}
_COMPONENT_TYPES = {item.value for item in ComponentType}


def _raw(op: ComponentOperation | Mapping[str, Any], key: str) -> Any:
    if isinstance(op, ComponentOperation):
        value = getattr(op, key)
        return value.value if hasattr(value, "value") else value
    return op.get(key)


def validate_maintenance_batch(
    operations: Sequence[ComponentOperation | Mapping[str, Any]] | None,
) -> list[ComponentOperation]:
    """Check a maintenance batch as a whole before anything is touched.

    Raises ``InvalidRequest`` for an empty batch, an entry that is not an
    operation mapping, an unknown ``operation`` or ``component_type``, an
    operation missing the fields its kind needs, or mixed hardware ids.
    Hardware ids are compared after validation, so ``5`` and ``"5"`` are the
    same unit.
    """

    if operations is None:
        raise InvalidRequest("At least one component operation is required")
    if isinstance(operations, (str, bytes, Mapping)) or not isinstance(operations, Iterable):
        raise InvalidRequest("Component operations must be a list of operations")
    operations = list(operations)
    if not operations:
        raise InvalidRequest("At least one component operation is required")

    for index, op in enumerate(operations):
        if not isinstance(op, (ComponentOperation, Mapping)):
            raise InvalidRequest(f"Operation at position {index} must be a mapping, got {type(op).__name__}")
        operation = _raw(op, "operation")
        if not isinstance(operation, str) or operation not in _OPERATIONS:
            raise InvalidRequest(
                f"Unknown operation at position {index}: {operation!r}",
                details={"allowed": sorted(_OPERATIONS)},
            )
        component_type = _raw(op, "component_type")
        if not isinstance(component_type, str) or component_type not in _COMPONENT_TYPES:
            raise InvalidRequest(
                f"Unknown component_type at position {index}: {component_type!r}",
                details={"allowed": sorted(_COMPONENT_TYPES)},
            )

    parsed = [parse_operation(op) for op in operations]
    hardware_ids = {op.hardware_id for op in parsed}
    if len(hardware_ids) != 1:
        raise InvalidRequest(
            "All operations must target the same hardware",
            details={"hardware_ids": sorted(hardware_ids)},
        )
    return parsed


class IssuanceService:
    def __init__(
        self,
        db: Session,
        components: ComponentService | None = None,
        assign_hardware: AssignmentUpdater | None = None,
        clock: Clock | None = None,
        logger_: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.clock = clock or (components.clock if components else SystemClock())
        self.components = components or ComponentService(db, clock=self.clock)
        self.assign_hardware = assign_hardware or self._default_assign
        self.log = logger_ or logger

    def _default_assign(self, db: Session, hardware_id: int, fields: Mapping[str, Any], actor_id: int | None):
        return update_hardware_assignment(db, hardware_id, fields, actor_id, clock=self.clock)

    def _fail(self, exc: Exception, action: str) -> IssuanceResult:
        if isinstance(exc, ItamError):
            self.log.warning(
                f"{action}.rejected",
                extra={"extra_data": {"code": exc.code, "reason": exc.message}},
            )
            return IssuanceResult.from_error(exc)
        self.log.exception(f"{action}.failed")
        code = "database_error" if isinstance(exc, SQLAlchemyError) else "unexpected_error"
        return IssuanceResult.failure(f"Failed to {action.replace('_', ' ')}: {exc}", code=code)

    @staticmethod
    def _resolve_issued_to(ops: Iterable[ComponentOperation], hardware: Hardware, actor_id: int | None) -> int | None:
        for op in ops:
            if op.issued_to:
                return op.issued_to
        return hardware.issued_to or actor_id

    def _detail(self, issuance: Issuance, op: ComponentOperation, change: ComponentChange) -> ComponentIssuanceDetail:
        return ComponentIssuanceDetail(
            issuance_id=issuance.id,
            operation_type=op.operation.value,
            component_type=op.component_type.value,
            old_component_id=change.old_component_id,
            old_component_condition=change.old_condition,
            old_component_data=change.old_data,
            new_component_id=change.new_component_id,
            new_component_condition=change.new_condition,
            new_component_data=change.new_data,
            reason=op.reason,
            remarks=op.remarks,
            created_at=self.clock.timestamp(),
        )

    def _open_issuance(
        self,
        *,
        issuance_type: IssuanceType,
        hardware: Hardware,
        issued_to: int | None,
        location: str | None,
        request_number: str | None,
        remarks: str | None,
        actor_id: int | None,
    ) -> Issuance:
        now = self.clock.timestamp()
        issuance = Issuance(
            issuance_number=next_issuance_number(self.db, self.clock),
            issuance_type=issuance_type.value,
            request_number=request_number,
            hostname=hardware.hostname,
            hardware_id=hardware.id,
            issued_to=issued_to,
            location=location,
            remarks=remarks,
            created_by=actor_id,
            created_at=now,
        )
        self.db.add(issuance)
        self.db.flush()
        self.db.add(
            Acknowledgement(
                issuance_id=issuance.id,
                acknowledged_by=issued_to,
                status=AcknowledgementStatus.PENDING.value,
                created_at=now,
            )
        )
        self.db.flush()
        record_activity(
            self.db,
            EntityRef.issuance(issuance.id),
            "issuance_created",
            actor_id,
            new_values={
                "issuance_number": issuance.issuance_number,
                "issuance_type": issuance_type.label,
                "issued_to": issued_to,
                "hostname": hardware.hostname,
            },
            related=EntityRef.hardware(hardware.id),
            clock=self.clock,
        )
        return issuance

    def process_component_maintenance(
        self,
        operations: Sequence[ComponentOperation | Mapping[str, Any]],
        actor_id: int | None,
    ) -> IssuanceResult:
        """Apply a batch of component operations to one unit as a single issuance."""

        with log_context("issuance.component_maintenance", actor_id):
            try:
                ops = validate_maintenance_batch(operations)
                with transaction(self.db):
                    hardware = require_hardware(self.db, ops[0].hardware_id)
                    issued_to = self._resolve_issued_to(ops, hardware, actor_id)
                    changes = [(op, self.components.apply(op, actor_id, hardware=hardware)) for op in ops]
                    request_number = next((op.request_number for op in ops if op.request_number), None)
                    issuance = self._open_issuance(
                        issuance_type=IssuanceType.COMPONENT_MAINTENANCE,
                        hardware=hardware,
                        issued_to=issued_to,
                        location=hardware.location,
                        request_number=request_number,
                        remarks=f"Component maintenance: {len(ops)} operation(s)",
                        actor_id=actor_id,
                    )
                    for op, change in changes:
                        self.db.add(self._detail(issuance, op, change))
                    self.db.flush()
                    result = IssuanceResult.ok(
                        "Component maintenance recorded successfully",
                        issuance_id=issuance.id,
                        issuance_number=issuance.issuance_number,
                        hardware_id=hardware.id,
                        issued_to=issued_to,
                        details=len(changes),
                    )
            except Exception as exc:
                return self._fail(exc, "process_component_maintenance")

        self.log.info("issuance.created", extra={"extra_data": dict(result.data or {})})
        return result

    def create_whole_unit_issuance(
        self,
        request: WholeUnitIssuanceRequest | Mapping[str, Any],
        actor_id: int | None,
    ) -> IssuanceResult:
        """Hand complete units to employees; one issuance per hostname, one transaction."""

        with log_context("issuance.whole_unit", actor_id):
            try:
                data = validated(WholeUnitIssuanceRequest, request, "whole-unit issuance request")

                created: list[dict[str, Any]] = []
                with transaction(self.db):
                    for item in data.items:
                        hardware = get_hardware_by_hostname(self.db, item.hostname)
                        if hardware is None:
                            raise NotFound(f"Hardware not found: {item.hostname}")
                        issuance = self._open_issuance(
                            issuance_type=IssuanceType.WHOLE_UNIT,
                            hardware=hardware,
                            issued_to=item.issued_to,
                            location=item.location,
                            request_number=data.request_number,
                            remarks=item.remarks or data.remarks,
                            actor_id=actor_id,
                        )
                        self.assign_hardware(
                            self.db,
                            hardware.id,
                            {
                                "issued_to": item.issued_to,
                                "location": item.location,
                                "date_issued": self.clock.today(),
                            },
                            actor_id,
                        )
                        created.append(
                            {
                                "issuance_id": issuance.id,
                                "issuance_number": issuance.issuance_number,
                                "hostname": hardware.hostname,
                                "hardware_id": hardware.id,
                            }
                        )
            except Exception as exc:
                return self._fail(exc, "create_whole_unit_issuance")

        self.log.info("issuance.whole_unit_created", extra={"extra_data": {"count": len(created)}})
        return IssuanceResult.ok("Items issued successfully", issuances=created)

    def acknowledge(self, issuance_id: int, actor_id: int) -> IssuanceResult:
        """Confirm receipt of an issuance by the employee it was issued to."""

        with log_context("issuance.acknowledge", actor_id):
            issuance = self.get_issuance(issuance_id)
            ack = issuance.acknowledgement if issuance else None
            if ack is None:
                return IssuanceResult.failure("Issuance not found", code="not_found")
            if ack.is_acknowledged:
                return IssuanceResult.failure(
                    "This issuance has already been acknowledged",
                    code="already_acknowledged",
                )
            if ack.acknowledged_by != actor_id:
                self.log.warning(
                    "issuance.acknowledge_denied",
                    extra={"extra_data": {"issuance_id": issuance_id, "expected": ack.acknowledged_by}},
                )
                return IssuanceResult.failure(
                    "You are not authorized to acknowledge this item",
                    code="not_authorized",
                )

            try:
                with transaction(self.db):
                    now = self.clock.timestamp()
                    ack.status = AcknowledgementStatus.ACKNOWLEDGED.value
                    ack.acknowledged_at = now
                    ack.remarks = ACKNOWLEDGED_REMARK
                    ack.updated_at = now
                    self.db.flush()
                    record_activity(
                        self.db,
                        EntityRef.acknowledgement(ack.id),
                        "issuance_acknowledged",
                        actor_id,
                        old_values={"status": AcknowledgementStatus.PENDING.label},
                        new_values={"status": AcknowledgementStatus.ACKNOWLEDGED.label, "acknowledged_at": now},
                        related=EntityRef.issuance(issuance.id),
                        clock=self.clock,
                    )
            except SQLAlchemyError as exc:
                return self._fail(exc, "acknowledge")

            return IssuanceResult.ok(
                "Issuance acknowledged successfully",
                issuance_id=issuance_id,
                issuance_number=issuance.issuance_number,
                acknowledged_at=now,
            )

    def get_issuance(self, issuance_id: int) -> Issuance | None:
        stmt = (
            select(Issuance)
            .where(Issuance.id == issuance_id)
            .options(selectinload(Issuance.details), selectinload(Issuance.acknowledgement))
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_pending_acknowledgements(self, employee_id: int) -> list[Issuance]:
        stmt = (
            select(Issuance)
            .join(Acknowledgement, Acknowledgement.issuance_id == Issuance.id)
            .where(
                Acknowledgement.acknowledged_by == employee_id,
                Acknowledgement.status == AcknowledgementStatus.PENDING.value,
            )
            .order_by(Issuance.created_at.desc(), Issuance.id.desc())
        )
        return self.db.execute(stmt).scalars().all()
