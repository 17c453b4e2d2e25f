# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from pathlib import Path

import pytest

from hubspot_importer.hubspot.client import HubSpotValidationError


def invalid_property_error(name: str) -> HubSpotValidationError:
    """HubSpot 400 body naming one invalid property, as the API returns it."""
    detail = json.dumps([{"isValid": False, "message": f"{name} was not valid", "name": name}])
    body = {
        "status": "error",
        "message": f"Property values were not valid: {detail}",
        "category": "VALIDATION_ERROR",
    }
    return HubSpotValidationError(body["message"], 400, body)


class FakeHubSpot:
    """In-memory stand-in for HubSpotClient.

    - batch_create fails with a 400 when ``fail_batches`` is set
    - create_one rejects any property listed in ``invalid_properties``
    """

    def __init__(self, *, fail_batches: bool = False, invalid_properties: tuple[str, ...] = ()) -> None:
        self.fail_batches = fail_batches
        self.invalid_properties = invalid_properties
        self.batch_calls: list[list[dict[str, str]]] = []
        self.single_calls: list[dict[str, str]] = []
        self.object_types: set[str] = set()
        self._next_id = 1000

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def __aenter__(self) -> FakeHubSpot:
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    async def batch_create(self, object_type: str, property_sets: list[dict[str, str]]) -> dict:
        self.object_types.add(object_type)
        self.batch_calls.append([dict(p) for p in property_sets])
        if self.fail_batches:
            raise HubSpotValidationError("Batch input invalid", 400, {"message": "Batch input invalid"})
        return {
            "status": "COMPLETE",
            "results": [{"id": self._new_id(), "properties": p} for p in property_sets],
            "errors": [],
        }

    async def create_one(self, object_type: str, properties: dict[str, str]) -> dict:
        self.object_types.add(object_type)
        self.single_calls.append(dict(properties))
        for name in self.invalid_properties:
            if name in properties:
                raise invalid_property_error(name)
        return {"id": self._new_id(), "properties": properties}


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("HUBSPOT_PRIVATE_APP_TOKEN", "HUBSPOT_ACCESS_TOKEN", "GOOGLE_ACCESS_TOKEN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def sample_config_yaml() -> str:
    return """object_type: companies
source:
  type: csv
  path: data/leads.csv
batch_size: 100
concurrency: 6
fallback_pause_seconds: 0
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def write_csv(temp_workdir: Path):
    """Write data/leads.csv with a Business/Number/Notes header and the given rows."""
    def _write(rows: list[tuple[str, str, str]], name: str = "leads.csv") -> Path:
        lines = ["Business,Number,Notes"] + [",".join(r) for r in rows]
        path = temp_workdir / "data" / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture()
def fake_hubspot() -> FakeHubSpot:
    return FakeHubSpot()


@pytest.fixture()
def make_hubspot():
    """Factory for FakeHubSpot with custom failure behaviour."""
    return FakeHubSpot


@pytest.fixture()
def invalid_property():
    """Factory for a HubSpot 400 error naming one invalid property."""
    return invalid_property_error


@pytest.fixture()
def sleep_calls():
    """Awaitable sleep that records requested durations instead of waiting."""
    calls: list[float] = []

    async def _sleep(seconds: float) -> None:
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
