import importlib
import json
import logging

import pytest

from itam.core.conditions import (
    condition_rank,
    map_removal_condition,
    normalize_condition,
    resolve_install_condition,
)
from itam.core.context import log_context
from itam.core.errors import InvalidRequest, IssuanceResult, LicenseExhausted, NotFound, PartNotFound
from itam.core.hostnames import hostname_aliases, normalize_hostname
from itam.core.logging import JsonLogFormatter, configure_logging
from itam.settings import AppSettings

VOCAB = ["Working", "Used", "Defective", "Unknown"]


def test_normalize_condition_is_case_insensitive():
    assert normalize_condition(" used ", VOCAB) == "Used"
    assert normalize_condition("BROKEN", VOCAB) is None
    assert normalize_condition(None, VOCAB) is None


def test_resolve_install_condition_defaults_and_rejects():
    assert resolve_install_condition(None, VOCAB, "Working") == "Working"
    assert resolve_install_condition("defective", VOCAB, "Working") == "Defective"
    with pytest.raises(InvalidRequest):
        resolve_install_condition("shiny", VOCAB, "Working")


def test_removal_policy_defaults_to_working():
    assert map_removal_condition("Faulty") == "Used"
    assert map_removal_condition("") == "Working"
    assert map_removal_condition(None) == "Working"


def test_condition_rank_puts_unknown_labels_last():
    assert condition_rank("Used", VOCAB) == 1
    assert condition_rank("Refurbished", VOCAB) == len(VOCAB)


def test_hostname_normalisation():
    assert normalize_hostname("  pc-014 ") == "PC-014"
    assert normalize_hostname("pc-014.corp.local", ["corp.local"]) == "PC-014"
    assert normalize_hostname("   ") is None


def test_hostname_aliases_cover_common_spellings():
    aliases = hostname_aliases("pc-014.corp.local", ["corp.local"])
    assert aliases[0] == "PC-014"
    assert "pc-014.corp.local" in aliases
    assert "pc-014" in aliases
    assert hostname_aliases(None) == []


def test_error_hierarchy_and_payload():
    err = PartNotFound("Part not found: RAM", details={"brand": "X"})
    assert isinstance(err, NotFound)
    assert err.as_payload() == {"code": "part_not_found", "message": "Part not found: RAM", "details": {"brand": "X"}}
    assert isinstance(InvalidRequest("bad"), ValueError)


def test_issuance_result_envelope():
    ok = IssuanceResult.ok("done", issuance_id=3)
    failed = IssuanceResult.from_error(LicenseExhausted("License has reached maximum activations (2)"))
    assert ok.model_dump()["data"] == {"issuance_id": 3}
    assert (failed.success, failed.code) == (False, "license_exhausted")
    assert IssuanceResult.ok("nothing").data is None


def test_json_formatter_includes_context_and_extra_data():
    record = logging.LogRecord("itam.test", logging.INFO, __file__, 1, "component.part_installed", None, None)
    record.extra_data = {"hardware_id": 4}
    with log_context("component.add", actor_id=7):
        payload = json.loads(JsonLogFormatter().format(record))

    assert payload["message"] == "component.part_installed"
    assert payload["operation"] == "component.add"
    assert payload["actor_id"] == 7
    assert payload["hardware_id"] == 4
    assert payload["timestamp"].endswith("Z")


def test_settings_parse_comma_lists(monkeypatch):
    monkeypatch.setenv("INVENTORY_CONDITIONS", "New, Working ,Used")
    monkeypatch.setenv("HOSTNAME_DOMAINS", ".corp.local,LAB.example")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = AppSettings(_env_file=None)

    assert settings.INVENTORY_CONDITIONS == ["New", "Working", "Used"]
    assert settings.HOSTNAME_DOMAINS == ["corp.local", "lab.example"]
    assert settings.LOG_LEVEL == "DEBUG"


def test_settings_require_a_condition(monkeypatch):
    monkeypatch.setenv("INVENTORY_CONDITIONS", " , ")
    with pytest.raises(ValueError):
        AppSettings(_env_file=None)


def test_configure_logging_installs_formatter():
    saved_handlers, saved_level = logging.root.handlers[:], logging.root.level
    try:
        configure_logging(level="warning", json_output=True)
        (handler,) = logging.root.handlers
        assert isinstance(handler.formatter, JsonLogFormatter)
        assert logging.root.level == logging.WARNING

        configure_logging(json_output=False)
        assert not isinstance(logging.root.handlers[0].formatter, JsonLogFormatter)
    finally:
        logging.root.handlers = saved_handlers
        logging.root.setLevel(saved_level)


@pytest.mark.parametrize("module", ["activity_log", "hardware", "issuance", "part", "software"])
def test_model_modules_are_documented(module):
    mod = importlib.import_module(f"itam.models.{module}")
    assert mod.__doc__ and mod.__doc__.startswith("SQLAlchemy model")
