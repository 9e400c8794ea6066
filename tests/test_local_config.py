"""Tests for the local JSON config file."""

import json
import os
from decimal import Decimal

import pytest
from pydantic import ValidationError

from ledgervault.config.local import LocalConfig, LocalConfigStore
from ledgervault.models.crypto import KeyOrigin
from ledgervault.models.currency import RebaseCheckpoint


def test_missing_file_gives_defaults(tmp_path):
    store = LocalConfigStore(tmp_path / "nested" / "config.json", default_currency="INR")

    config = store.load()

    assert config.currency == "INR"
    assert config.encryption_enabled is False
    assert config.onboarded is False
    assert config.pending_rebase is None


def test_save_and_load_roundtrip(tmp_path):
    store = LocalConfigStore(tmp_path / "config.json")
    checkpoint = RebaseCheckpoint(old_code="USD", new_code="EUR", rate=Decimal("0.92"))
    checkpoint.mark_done("transactions", "t-1")
    config = LocalConfig(
        currency="USD",
        encryption_enabled=True,
        encryption_mode=KeyOrigin.PASSWORD,
        salt="c2FsdHNhbHRzYWx0c2FsdA==",
        onboarded=True,
        pending_rebase=checkpoint,
    )

    store.save(config)
    loaded = store.load()

    assert loaded.encryption_mode == KeyOrigin.PASSWORD
    assert loaded.salt == config.salt
    assert loaded.pending_rebase.rate == Decimal("0.92")
    assert loaded.pending_rebase.is_done("transactions", "t-1")
    assert json.loads((tmp_path / "config.json").read_text())["encryption_mode"] == "password"


def test_update_changes_only_given_fields(tmp_path):
    store = LocalConfigStore(tmp_path / "config.json")
    store.save(LocalConfig(onboarded=True))

    updated = store.update(currency="GBP")

    assert updated.currency == "GBP"
    assert updated.onboarded is True
    assert store.load().currency == "GBP"


def test_no_temp_files_left_behind(tmp_path):
    store = LocalConfigStore(tmp_path / "config.json")
    store.save(LocalConfig())
    store.update(currency="EUR")

    assert os.listdir(tmp_path) == ["config.json"]


def test_failed_replace_keeps_previous_file(tmp_path, monkeypatch):
    store = LocalConfigStore(tmp_path / "config.json")
    store.save(LocalConfig(currency="USD"))

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)
    with pytest.raises(OSError):
        store.save(LocalConfig(currency="EUR"))

    assert os.listdir(tmp_path) == ["config.json"]
    assert store.load().currency == "USD"


def test_corrupt_file_raises_validation_error(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"currency": "USD", "onboarded": ', encoding="utf-8")

    with pytest.raises(ValidationError):
        LocalConfigStore(path).load()


def test_load_validates_field_types(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"currency": "USD", "encryption_enabled": "maybe"}), encoding="utf-8")

    with pytest.raises(ValidationError):
        LocalConfigStore(path).load()


def test_enabled_without_mode_rejected():
    with pytest.raises(ValueError):
        LocalConfig(encryption_enabled=True)


def test_config_has_no_key_field():
    assert not any("key" in name for name in LocalConfig.model_fields)
