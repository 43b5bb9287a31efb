"""
Tests for capture records, the interception ledger and the script path registry
"""

import pytest

from challenge_bridge.interception.capture import (
    CaptureRecord,
    InterceptionLedger,
    ScriptPathRegistry,
    ScriptPathState,
)


def test_capture_record_last_writer_wins():
    record = CaptureRecord(("script_url", "body"))
    record.set("script_url", "https://a.example/1")
    record.set("script_url", "https://a.example/2")

    assert record.get("script_url") == "https://a.example/2"
    assert record.is_set("script_url")
    assert not record.is_set("body")


def test_capture_record_rejects_unknown_slots():
    record = CaptureRecord(("script_url",))
    with pytest.raises(KeyError):
        record.set("scriptUrl", "x")
    with pytest.raises(KeyError):
        record.get("scriptUrl")


def test_capture_record_clear():
    record = CaptureRecord(("a", "b"))
    record.set("a", 1)
    record.set("b", 2)

    record.clear("a")
    assert record.snapshot() == {"a": None, "b": 2}

    record.clear()
    assert record.snapshot() == {"a": None, "b": None}


def test_ledger_records_once_per_epoch():
    ledger = InterceptionLedger()

    assert ledger.record("/resource") is True
    assert ledger.record("/resource") is False
    assert ledger.record("/other") is True
    assert ledger.snapshot() == ["/resource", "/other"]

    ledger.clear()
    assert len(ledger) == 0
    assert "/resource" not in ledger


def test_registry_matches_path_prefix_only():
    registry = ScriptPathRegistry()
    registry.add("/resource")

    assert registry.find_matching_path("https://shop.example.com/resource/x?d=1") == "/resource"
    assert registry.find_matching_path("https://shop.example.com/other?d=/resource") is None
    assert registry.find_matching_path("https://shop.example.com/") is None


def test_registry_first_inserted_prefix_wins():
    registry = ScriptPathRegistry()
    registry.add("/a")
    registry.add("/a/b")

    assert registry.find_matching_path("https://shop.example.com/a/b/c") == "/a"

    reversed_registry = ScriptPathRegistry()
    reversed_registry.add("/a/b")
    reversed_registry.add("/a")

    assert reversed_registry.find_matching_path("https://shop.example.com/a/b/c") == "/a/b"


def test_registry_reset_keeps_configured_paths():
    registry = ScriptPathRegistry({"/configured": "tenantA"})
    entry = registry.get("/configured")
    entry.script_url = "https://shop.example.com/configured/x.js"
    entry.state = ScriptPathState.OPERATIONAL
    registry.add("/discovered")

    registry.reset()

    assert registry.paths == ["/configured"]
    assert registry.sitekey_for("/configured") == "tenantA"
    assert registry.get("/configured").script_url is None
    assert registry.get("/configured").state == ScriptPathState.UNDISCOVERED
