"""Issuance recorder: maintenance batches, whole-unit hand-outs, acknowledgements."""

import pytest
from sqlalchemy import select

from itam.core.errors import InvalidRequest
from itam.crud.activity_log import EntityRef, count_logs, list_entity_logs
from itam.models import Acknowledgement, ComponentIssuanceDetail, Hardware, HardwarePart, Issuance
from itam.schemas.issuance import IssuanceOut
from itam.services.components import ComponentService
from itam.services.issuance import IssuanceService, validate_maintenance_batch

from factories import RAM, add_hardware, add_part, add_software, inventory_row


def _service(db, clock, **kwargs):
    return IssuanceService(db, ComponentService(db, clock=clock), clock=clock, **kwargs)


def _add_ram(hardware_id, **extra):
    return {"hardware_id": hardware_id, "operation": "add", "component_type": "part", **RAM, **extra}


def test_component_maintenance_records_header_details_and_ack(db_session, clock):
    hardware = add_hardware(db_session, issued_to=55)
    part = add_part(db_session, stock={"Working": 3})
    add_software(db_session, licenses=[("KEY-1", None, 1, 0)])
    service = _service(db_session, clock)

    result = service.process_component_maintenance(
        [
            _add_ram(hardware.id, reason="More memory"),
            {
                "hardware_id": hardware.id,
                "operation": "add",
                "component_type": "software",
                "software_name": "Office",
                "software_type": "Productivity",
                "version": "2021",
                "license_key": "KEY-1",
            },
        ],
        actor_id=7,
    )

    assert result.success, result.message
    assert result.data["issuance_number"] == "ISS-2026-0001"
    assert result.data["issued_to"] == 55
    assert result.data["details"] == 2

    issuance = service.get_issuance(result.data["issuance_id"])
    assert issuance.issuance_type == 2
    assert issuance.type_label == "Component Maintenance"
    assert issuance.hardware_id == hardware.id
    assert issuance.hostname == "PC-001"
    assert issuance.created_by == 7
    assert [d.component_type for d in issuance.details] == ["part", "software"]
    part_detail = issuance.details[0]
    assert part_detail.operation_type == "add"
    assert part_detail.new_component_condition == "Working"
    assert part_detail.new_component_data["model"] == "HX8"
    assert part_detail.reason == "More memory"
    assert issuance.acknowledgement.status == 0
    assert issuance.acknowledgement.status_label == "Pending"
    assert issuance.acknowledgement.acknowledged_by == 55
    assert inventory_row(db_session, part.id, "Working").quantity == 2

    out = IssuanceOut.model_validate(issuance)
    assert out.issuance_number == "ISS-2026-0001"
    assert [d.operation_type for d in out.details] == ["add", "add"]


def test_issued_to_prefers_explicit_then_holder_then_actor(db_session, clock):
    add_part(db_session, stock={"Working": 5})
    held = add_hardware(db_session, "PC-001", issued_to=55)
    unheld = add_hardware(db_session, "PC-002")
    service = _service(db_session, clock)

    explicit = service.process_component_maintenance([_add_ram(held.id, issued_to=66)], actor_id=7)
    holder = service.process_component_maintenance([_add_ram(held.id)], actor_id=7)
    actor = service.process_component_maintenance([_add_ram(unheld.id)], actor_id=7)

    assert [r.data["issued_to"] for r in (explicit, holder, actor)] == [66, 55, 7]


def test_mixed_hardware_batch_is_rejected_before_any_change(db_session, clock):
    add_hardware(db_session, "PC-005")
    add_hardware(db_session, "PC-007")
    part = add_part(db_session, stock={"Working": 3})
    service = _service(db_session, clock)

    result = service.process_component_maintenance([_add_ram(1), _add_ram(2)], actor_id=7)

    assert not result.success
    assert result.code == "invalid_request"
    assert count_logs(db_session) == 0
    assert inventory_row(db_session, part.id, "Working").quantity == 3
    assert db_session.execute(select(Issuance)).scalars().all() == []


@pytest.mark.parametrize(
    "batch",
    [
        [],
        [{"hardware_id": 5, "operation": "upgrade", "component_type": "part"}],
        [{"hardware_id": 5, "operation": "add", "component_type": "firmware"}],
        [{"hardware_id": 5, "operation": "add", "component_type": "part", **RAM}, {"hardware_id": 7, "operation": "add", "component_type": "part", **RAM}],
        [{"hardware_id": 5, "operation": "remove", "component_type": "part"}],
    ],
)
def test_validate_maintenance_batch_rejects(batch):
    with pytest.raises(InvalidRequest):
        validate_maintenance_batch(batch)


def test_failed_operation_rolls_back_the_whole_batch(db_session, clock):
    hardware = add_hardware(db_session)
    part = add_part(db_session, stock={"Working": 1})
    service = _service(db_session, clock)

    result = service.process_component_maintenance(
        [_add_ram(hardware.id), _add_ram(hardware.id)],
        actor_id=7,
    )

    assert not result.success
    assert result.code == "no_inventory_available"
    assert "No available inventory" in result.message
    assert inventory_row(db_session, part.id, "Working").quantity == 1
    assert db_session.execute(select(HardwarePart)).scalars().all() == []
    assert db_session.execute(select(Issuance)).scalars().all() == []
    assert count_logs(db_session) == 0


def test_unknown_hardware_is_reported(db_session, clock):
    service = _service(db_session, clock)

    result = service.process_component_maintenance([_add_ram(99)], actor_id=7)

    assert not result.success
    assert result.code == "not_found"
    assert result.message == "Hardware not found: 99"


def test_replace_is_recorded_with_both_sides(db_session, clock):
    hardware = add_hardware(db_session)
    add_part(db_session, stock={"Working": 1})
    add_part(db_session, model="FURY", stock={"Working": 1})
    components = ComponentService(db_session, clock=clock)
    old = components.add_component(_add_ram(hardware.id), actor_id=7).parts[0]
    old_id = old.id
    service = IssuanceService(db_session, components, clock=clock)

    result = service.process_component_maintenance(
        [
            {
                "hardware_id": hardware.id,
                "operation": "replace",
                "component_type": "part",
                "component_id": old_id,
                "old_component_condition": "faulty",
                "reason": "Failing",
                **{**RAM, "model": "FURY"},
            }
        ],
        actor_id=7,
    )

    assert result.success, result.message
    detail = db_session.execute(select(ComponentIssuanceDetail)).scalar_one()
    assert detail.old_component_id == old_id
    assert detail.old_component_condition == "Used"
    assert detail.old_component_data["model"] == "HX8"
    assert detail.new_component_data["model"] == "FURY"


def test_whole_unit_issuance_assigns_hardware(db_session, clock):
    first = add_hardware(db_session, "PC-001")
    second = add_hardware(db_session, "PC-002")
    service = _service(db_session, clock)

    result = service.create_whole_unit_issuance(
        {
            "request_number": "REQ-100",
            "items": [
                {"hostname": "pc-001", "issued_to": 11, "location": "HQ 3F"},
                {"hostname": " PC-002 ", "issued_to": 12, "location": "Warehouse"},
            ],
        },
        actor_id=7,
    )

    assert result.success, result.message
    assert result.message == "Items issued successfully"
    numbers = [item["issuance_number"] for item in result.data["issuances"]]
    assert numbers == ["ISS-2026-0001", "ISS-2026-0002"]

    first = db_session.get(Hardware, first.id)
    assert (first.issued_to, first.location, first.date_issued) == (11, "HQ 3F", "2026-03-15")
    acks = db_session.execute(select(Acknowledgement).order_by(Acknowledgement.id)).scalars().all()
    assert [a.acknowledged_by for a in acks] == [11, 12]
    assigned = list_entity_logs(db_session, EntityRef.hardware(second.id), action_type="hardware_assigned")
    assert assigned[0].new_values["issued_to"] == 12


def test_whole_unit_issuance_uses_injected_updater(db_session, clock):
    hardware = add_hardware(db_session, "PC-001")
    calls = []

    def updater(db, hardware_id, fields, actor_id):
        calls.append((hardware_id, dict(fields), actor_id))

    service = _service(db_session, clock, assign_hardware=updater)

    result = service.create_whole_unit_issuance(
        {"items": [{"hostname": "PC-001", "issued_to": 11, "location": "HQ"}]}, actor_id=7
    )

    assert result.success
    assert calls == [(hardware.id, {"issued_to": 11, "location": "HQ", "date_issued": "2026-03-15"}, 7)]


def test_whole_unit_issuance_unknown_hostname_rolls_back(db_session, clock):
    add_hardware(db_session, "PC-001")
    service = _service(db_session, clock)

    result = service.create_whole_unit_issuance(
        {
            "items": [
                {"hostname": "PC-001", "issued_to": 11},
                {"hostname": "PC-404", "issued_to": 12},
            ]
        },
        actor_id=7,
    )

    assert not result.success
    assert result.message == "Hardware not found: PC-404"
    assert db_session.execute(select(Issuance)).scalars().all() == []
    assert db_session.execute(select(Hardware.issued_to)).scalar_one() is None


def test_whole_unit_issuance_validates_request(db_session, clock):
    service = _service(db_session, clock)

    result = service.create_whole_unit_issuance({"items": []}, actor_id=7)

    assert not result.success
    assert result.code == "invalid_request"


def _issue(db, clock, issued_to=11):
    add_hardware(db, "PC-001")
    service = _service(db, clock)
    result = service.create_whole_unit_issuance({"items": [{"hostname": "PC-001", "issued_to": issued_to}]}, actor_id=7)
    return service, result.data["issuances"][0]["issuance_id"]


def test_acknowledge_transitions_pending_to_acknowledged(db_session, clock):
    service, issuance_id = _issue(db_session, clock)
    clock.advance(hours=2)

    result = service.acknowledge(issuance_id, actor_id=11)

    assert result.success
    assert result.message == "Issuance acknowledged successfully"
    ack = service.get_issuance(issuance_id).acknowledgement
    assert ack.status == 1
    assert ack.acknowledged_at == "2026-03-15T12:30:00Z"
    assert ack.remarks == "Acknowledged via system"
    assert service.list_pending_acknowledgements(11) == []
    (log,) = list_entity_logs(db_session, EntityRef.acknowledgement(ack.id))
    assert log.action_type == "issuance_acknowledged"


def test_acknowledge_twice_is_reported(db_session, clock):
    service, issuance_id = _issue(db_session, clock)
    service.acknowledge(issuance_id, actor_id=11)

    again = service.acknowledge(issuance_id, actor_id=11)

    assert not again.success
    assert again.code == "already_acknowledged"
    assert again.message == "This issuance has already been acknowledged"


def test_acknowledge_by_someone_else_is_reported(db_session, clock):
    service, issuance_id = _issue(db_session, clock)

    result = service.acknowledge(issuance_id, actor_id=99)

    assert not result.success
    assert result.code == "not_authorized"
    assert [i.id for i in service.list_pending_acknowledgements(11)] == [issuance_id]


def test_acknowledge_unknown_issuance(db_session, clock):
    service = _service(db_session, clock)

    result = service.acknowledge(12345, actor_id=1)

    assert not result.success
    assert result.code == "not_found"


@pytest.mark.parametrize(
    "batch",
    [
        ["bogus"],
        [{"hardware_id": [5], "operation": "add", "component_type": "part", **RAM}],
        [{"hardware_id": 5, "operation": ["add"], "component_type": "part"}],
        "PC-001",
        None,
    ],
)
def test_malformed_maintenance_batch_is_reported(db_session, clock, batch):
    service = _service(db_session, clock)

    result = service.process_component_maintenance(batch, actor_id=7)

    assert not result.success
    assert result.code == "invalid_request"


@pytest.mark.parametrize("request_", [None, "PC-001", {"items": "PC-001"}])
def test_malformed_whole_unit_request_is_reported(db_session, clock, request_):
    service = _service(db_session, clock)

    result = service.create_whole_unit_issuance(request_, actor_id=7)

    assert not result.success
    assert result.code == "invalid_request"


def test_unexpected_error_becomes_a_failed_result(db_session, clock, caplog):
    add_hardware(db_session, "PC-001")

    def broken_updater(db, hardware_id, fields, actor_id):
        raise RuntimeError("directory offline")

    service = _service(db_session, clock, assign_hardware=broken_updater)

    with caplog.at_level("ERROR", logger="itam.issuance"):
        result = service.create_whole_unit_issuance({"items": [{"hostname": "PC-001", "issued_to": 11}]}, actor_id=7)

    assert not result.success
    assert result.code == "unexpected_error"
    assert "directory offline" in result.message
    assert "create_whole_unit_issuance.failed" in caplog.messages
    assert db_session.execute(select(Issuance)).scalars().all() == []


def test_batch_hardware_ids_are_compared_after_coercion(db_session, clock):
    hardware = add_hardware(db_session)
    add_part(db_session, stock={"Working": 2})
    service = _service(db_session, clock)

    result = service.process_component_maintenance(
        [_add_ram(hardware.id), _add_ram(str(hardware.id))],
        actor_id=7,
    )

    assert result.success, result.message
    assert result.data["details"] == 2
    assert validate_maintenance_batch([_add_ram(3), _add_ram("3")])[1].hardware_id == 3
