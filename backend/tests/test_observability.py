"""Tests ensuring observability wiring is safe by default."""
from __future__ import annotations

import importlib

from app.core.config import settings
from app.observability import client as client_module


class _DummyOpik:
    def __init__(self, *args, **kwargs):
        self.kwargs = kwargs


def test_app_import_succeeds_when_opik_is_disabled(monkeypatch) -> None:
    monkeypatch.setenv("OPIK_ENABLED", "false")
    monkeypatch.delenv("OPIK_API_KEY", raising=False)

    import app.main as main_module

    reloaded_app = importlib.reload(main_module)

    assert hasattr(reloaded_app, "app")


def test_client_disabled_by_default(monkeypatch) -> None:
    monkeypatch.setattr(settings, "opik_enabled", False)
    client_module.reset_opik_client()

    assert client_module.get_opik_client() is None


def test_enabled_without_key_stays_disabled(monkeypatch) -> None:
    monkeypatch.setattr(settings, "opik_enabled", True)
    monkeypatch.setattr(settings, "opik_api_key", None)
    client_module.reset_opik_client()

    assert client_module.init_opik() is None
    client_module.reset_opik_client()


def test_client_created_once_when_enabled(monkeypatch) -> None:
    monkeypatch.setattr(settings, "opik_enabled", True)
    monkeypatch.setattr(settings, "opik_api_key", "key")
    monkeypatch.setattr(settings, "opik_project", "dayguard-test")
    monkeypatch.setattr(client_module, "Opik", _DummyOpik)
    client_module.reset_opik_client()

    first = client_module.get_opik_client()
    second = client_module.get_opik_client()

    assert isinstance(first, _DummyOpik)
    assert first is second
    assert first.kwargs == {"project_name": "dayguard-test", "api_key": "key"}
    client_module.reset_opik_client()
