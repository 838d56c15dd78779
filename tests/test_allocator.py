import logging

import pytest

from itam.core.errors import (
    LicenseExhausted,
    LicenseIdentifierMissing,
    LicenseNotFound,
    NoInventoryAvailable,
    PartNotFound,
)
from itam.crud.activity_log import count_logs
from itam.schemas.components import PartSpec
from itam.services.allocator import reserve_component, reserve_license

from factories import RAM, add_part, add_software, inventory_row


def test_reserve_prefers_requested_condition(db_session):
    part = add_part(db_session, stock={"Used": 4, "Working": 3})

    unit = reserve_component(db_session, PartSpec(**RAM), "working")

    assert unit.part.id == part.id
    assert unit.condition == "Working"
    assert unit.inventory.id == inventory_row(db_session, part.id, "Working").id
    assert not unit.fell_back


def test_reserve_falls_back_to_other_condition(db_session, caplog):
    part = add_part(db_session, stock={"Working": 0, "Used": 1})

    with caplog.at_level(logging.WARNING, logger="itam.allocator"):
        unit = reserve_component(db_session, PartSpec(**RAM), "Working")

    assert unit.condition == "Used"
    assert unit.requested_condition == "Working"
    assert unit.fell_back
    assert unit.inventory.id == inventory_row(db_session, part.id, "Used").id
    assert [r.getMessage() for r in caplog.records] == ["allocator.condition_fallback"]


def test_fallback_follows_condition_order(db_session):
    add_part(db_session, stock={"Defective": 5, "Used": 1})

    unit = reserve_component(db_session, PartSpec(**RAM), "Working")

    assert unit.condition == "Used"


def test_reserve_is_read_only(db_session):
    part = add_part(db_session, stock={"Working": 3})

    reserve_component(db_session, PartSpec(**RAM), "Working")
    reserve_component(db_session, PartSpec(**RAM), "Working")

    assert inventory_row(db_session, part.id, "Working").quantity == 3
    assert count_logs(db_session) == 0


def test_reserve_unknown_part(db_session):
    add_part(db_session, stock={"Working": 3})

    with pytest.raises(PartNotFound):
        reserve_component(db_session, PartSpec(**{**RAM, "specifications": "32GB"}), "Working")


def test_reserve_without_any_stock(db_session):
    add_part(db_session, stock={"Working": 0, "Used": 0})

    with pytest.raises(NoInventoryAvailable):
        reserve_component(db_session, PartSpec(**RAM), "Working")


def test_reserve_license_by_key_or_account(db_session):
    software = add_software(
        db_session,
        licenses=[("KEY-1", None, 1, 0), (None, "ops@example.com", 5, 1)],
    )

    by_key = reserve_license(db_session, software, license_key="KEY-1")
    by_account = reserve_license(db_session, software, account_user="ops@example.com")

    assert by_key.license.license_key == "KEY-1"
    assert by_account.license.account_user == "ops@example.com"


def test_reserve_license_failures(db_session):
    software = add_software(db_session, licenses=[("KEY-FULL", None, 2, 2)])

    with pytest.raises(LicenseIdentifierMissing):
        reserve_license(db_session, software)
    with pytest.raises(LicenseNotFound):
        reserve_license(db_session, software, license_key="NOPE")
    with pytest.raises(LicenseExhausted):
        reserve_license(db_session, software, license_key="KEY-FULL")


def test_license_lookup_is_scoped_to_the_title(db_session):
    add_software(db_session, name="Visio", licenses=[("SHARED", None, 1, 0)])
    office = add_software(db_session, name="Office", licenses=[])

    with pytest.raises(LicenseNotFound):
        reserve_license(db_session, office, license_key="SHARED")
