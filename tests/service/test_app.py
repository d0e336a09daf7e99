"""Tests for the FastAPI service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

import tjsdoc.service.plugin as plugin_module
from tjsdoc.coordinator import LifecycleState
from tjsdoc.docdb import DocDatabase
from tjsdoc.errors import FileParseError, LifecycleError
from tjsdoc.hooks import HookDispatcher
from tjsdoc.models import DocumentRecord, FileCandidate, OnParseError, ParseResult
from tjsdoc.pipeline import GenerationPipeline
from tjsdoc.plugins import PluginRegistry
from tjsdoc.runtime.python_ast import PythonDocParser
from tjsdoc.service import ServicePlugin, create_app


class _StubControl:
    def __init__(self) -> None:
        self.state = LifecycleState.IDLE
        self.pass_number = 2
        self.signals: List[str] = []
        self.terminated = False

    def request_regenerate(self) -> None:
        if self.terminated:
            raise LifecycleError("terminated")
        self.signals.append("regenerate")

    def request_shutdown(self) -> None:
        self.signals.append("shutdown")

    def parse_file(self, file_path: Path) -> Optional[ParseResult]:
        if file_path.name == "bad.py":
            raise FileParseError(file_path, "Syntax error in bad.py")
        if file_path.name == "gone.py":
            missing = FileNotFoundError(str(file_path))
            raise FileParseError(str(file_path), f"Failed to parse {file_path}") from missing
        return ParseResult(
            records=[
                DocumentRecord(kind="file"),
                DocumentRecord(kind="function"),
                DocumentRecord(kind="function"),
            ]
        )


@pytest.fixture
def control() -> _StubControl:
    return _StubControl()


@pytest.fixture
def client(control: _StubControl) -> TestClient:
    return TestClient(create_app(control))


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_endpoint(client: TestClient) -> None:
    response = client.get("/status")
    assert response.json() == {"state": "idle", "pass_number": 2}


def test_regenerate_and_shutdown_signal_the_control(client: TestClient, control: _StubControl) -> None:
    regenerate = client.post("/regenerate")
    shutdown = client.post("/shutdown")

    assert regenerate.status_code == 202
    assert regenerate.json() == {"status": "accepted", "signal": "regenerate"}
    assert shutdown.status_code == 202
    assert control.signals == ["regenerate", "shutdown"]


def test_regenerate_after_termination_conflicts(client: TestClient, control: _StubControl) -> None:
    control.terminated = True

    response = client.post("/regenerate")

    assert response.status_code == 409
    assert response.json()["detail"] == "terminated"


def test_parse_endpoint_counts_kinds(client: TestClient) -> None:
    response = client.post("/parse", json={"path": "src/a.py"})

    assert response.status_code == 200
    assert response.json() == {"path": "src/a.py", "records": 3, "kinds": {"file": 1, "function": 2}}


def test_parse_endpoint_maps_errors(client: TestClient) -> None:
    bad = client.post("/parse", json={"path": "src/bad.py"})
    gone = client.post("/parse", json={"path": "src/gone.py"})

    assert bad.status_code == 422
    assert bad.json()["path"].endswith("bad.py")
    assert gone.status_code == 404


def test_parse_endpoint_maps_pipeline_errors(tmp_path: Path) -> None:
    (tmp_path / "bad.py").write_text("def broken(:\n", encoding="utf-8")
    pipeline = GenerationPipeline(PythonDocParser(), DocDatabase(), HookDispatcher(PluginRegistry()), tmp_path)
    control = SimpleNamespace(
        parse_file=lambda path: pipeline.parse_file(
            FileCandidate(path=str(tmp_path / path), relative_path=str(path)), on_error=OnParseError.PROPAGATE
        )
    )
    client = TestClient(create_app(control))

    missing = client.post("/parse", json={"path": "missing.py"})
    broken = client.post("/parse", json={"path": "bad.py"})

    assert missing.status_code == 404
    assert missing.json()["path"].endswith("missing.py")
    assert broken.status_code == 422


class _FakeServer:
    instances: List["_FakeServer"] = []

    def __init__(self, config) -> None:
        self.config = config
        self.should_exit = False
        self.served = False
        _FakeServer.instances.append(self)

    async def serve(self) -> None:
        self.served = True
        while not self.should_exit:
            await asyncio.sleep(0.001)


def test_service_plugin_keeps_alive_and_stops_server(monkeypatch: pytest.MonkeyPatch) -> None:
    _FakeServer.instances = []
    monkeypatch.setattr(plugin_module.uvicorn, "Server", _FakeServer)
    plugin = ServicePlugin({"host": "0.0.0.0", "port": 9123})

    async def _scenario():
        context = SimpleNamespace(control=_StubControl())
        first = await plugin.on_complete(context)
        second = await plugin.on_complete(context)
        await asyncio.sleep(0.01)
        await plugin.on_shutdown(SimpleNamespace(config=None))
        return first, second

    first, second = asyncio.run(_scenario())

    assert first == {"keep_alive": True}
    assert second == {"keep_alive": True}
    [server] = _FakeServer.instances
    assert server.served
    assert server.should_exit
    assert server.config.host == "0.0.0.0"
    assert server.config.port == 9123
