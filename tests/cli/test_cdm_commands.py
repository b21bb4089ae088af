#!/usr/bin/env python3

"""Tests for CDM CLI commands."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
from click.testing import CliRunner

from pypolaris.cdm.bootstrap import ClusterConfig
from pypolaris.cli.main import main
from pypolaris.core.context import Context
from pypolaris.core.errors import PreconditionFailedError, TerminalFailureError
from pypolaris.core.poll import ProbeStatus
from pypolaris.log.logger import parse_log_level
from pypolaris.schemas.cdm import NodeDetails

CONFIG_TOML = """
[cdm]
node_ip = "10.0.0.10"
token = "config-token"
timeout_s = 15

[cluster]
name = "cluster-1"
admin_email = "admin@example.com"
admin_password = "secret"
management_gateway = "10.0.0.1"
management_subnet_mask = "255.255.255.0"

[[cluster.nodes]]
name = "node-1"
management_ip = "10.0.0.11"
"""


class _FakeBootstrap:
    """Fake bootstrap API recording calls."""

    def __init__(self, state: Dict[str, Any]) -> None:
        self.state = state

    def _record(self, name: str, ctx: Context, *args: Any, **kwargs: Any) -> Any:
        self.state["calls"].append((name, args, kwargs))
        self.state["contexts"].append(ctx)
        result = self.state.get(name)
        if isinstance(result, BaseException):
            raise result
        return result

    def is_bootstrapped(self, ctx: Context, **kwargs: Any) -> bool:
        return self._record("is_bootstrapped", ctx, **kwargs)

    def bootstrap_cluster(self, ctx: Context, config: ClusterConfig, **kwargs: Any) -> int:
        return self._record("bootstrap_cluster", ctx, config, **kwargs)

    def wait_for_bootstrap(self, ctx: Context, request_id: int, **kwargs: Any) -> ProbeStatus:
        return self._record("wait_for_bootstrap", ctx, request_id, **kwargs)


class _FakeRegistration(_FakeBootstrap):
    """Fake registration API recording calls."""

    def offline_entitle(self, ctx: Context) -> List[NodeDetails]:
        return self._record("offline_entitle", ctx)

    def set_registered_mode(self, ctx: Context, auth_token: str) -> str:
        return self._record("set_registered_mode", ctx, auth_token)


@pytest.fixture
def state(monkeypatch: pytest.MonkeyPatch) -> Dict[str, Any]:
    """Install a fake CDM facade and return its shared state."""
    shared: Dict[str, Any] = {
        "calls": [],
        "contexts": [],
        "created": [],
        "is_bootstrapped": False,
        "bootstrap_cluster": 42,
        "wait_for_bootstrap": ProbeStatus.success(),
        "set_registered_mode": "Hybrid",
    }

    class _FakeCDM:
        def __init__(self, node_ip: str, **kwargs: Any) -> None:
            shared["created"].append(("init", node_ip, kwargs))
            self.bootstrap = _FakeBootstrap(shared)
            self.registration = _FakeRegistration(shared)

        @classmethod
        def from_env(cls, options: Any = None) -> "_FakeCDM":
            shared["created"].append(("env", None, {}))
            return cls.__new__(cls)._init_apis()

        def _init_apis(self) -> "_FakeCDM":
            self.bootstrap = _FakeBootstrap(shared)
            self.registration = _FakeRegistration(shared)
            return self

    levels: List[str] = []
    monkeypatch.setattr("pypolaris.cli.cdm.commands.CDM", _FakeCDM)
    monkeypatch.setattr(sys.modules["pypolaris.cli.main"], "setup_logger", lambda level: levels.append(parse_log_level(level)))
    monkeypatch.setattr(sys.modules["pypolaris.cli.main"], "set_log_level_from_env", lambda: levels.append("env"))
    shared["levels"] = levels
    return shared


@pytest.fixture
def config_path(tmp_path: Path) -> str:
    path = tmp_path / "cdm.toml"
    path.write_text(CONFIG_TOML, encoding="utf-8")
    return str(path)


def _calls(state: Dict[str, Any]) -> List[Tuple[str, tuple, dict]]:
    return state["calls"]


def test_status_from_env(state: Dict[str, Any]) -> None:
    result = CliRunner().invoke(main, ["cdm", "status"])

    assert result.exit_code == 0, result.output
    assert result.output == "bootstrapped: false\n"
    assert state["created"] == [("env", None, {})]
    assert state["levels"] == ["env"]
    assert _calls(state) == [("is_bootstrapped", (), {})]


def test_status_from_config(state: Dict[str, Any], config_path: str) -> None:
    state["is_bootstrapped"] = True

    result = CliRunner().invoke(
        main,
        ["--log-level", "debug", "cdm", "status", "--config", config_path, "--timeout", "30", "--wait-time", "2"],
    )

    assert result.exit_code == 0, result.output
    assert result.output == "bootstrapped: true\n"
    assert state["levels"] == ["DEBUG"]
    kind, node_ip, kwargs = state["created"][0]
    assert (kind, node_ip) == ("init", "10.0.0.10")
    assert kwargs["token"] == "config-token"
    assert kwargs["options"].timeout_s == 15.0
    assert _calls(state) == [("is_bootstrapped", (), {"timeout": 30.0, "wait_time": 2.0})]


def test_bootstrap_and_wait(state: Dict[str, Any], config_path: str) -> None:
    result = CliRunner().invoke(main, ["cdm", "bootstrap", "--config", config_path, "--wait"])

    assert result.exit_code == 0, result.output
    assert result.output == "request_id: 42\nbootstrap finished\n"
    name, args, _ = _calls(state)[0]
    assert name == "bootstrap_cluster"
    assert args[0].cluster_name == "cluster-1"
    assert _calls(state)[1] == ("wait_for_bootstrap", (42,), {})


def test_bootstrap_requires_config(state: Dict[str, Any]) -> None:
    result = CliRunner().invoke(main, ["cdm", "bootstrap"])

    assert result.exit_code == 2
    assert "--config is required" in result.output
    assert _calls(state) == []


def test_bootstrap_already_bootstrapped(state: Dict[str, Any], config_path: str) -> None:
    state["bootstrap_cluster"] = PreconditionFailedError("cluster is already bootstrapped")

    result = CliRunner().invoke(main, ["cdm", "bootstrap", "--config", config_path])

    assert result.exit_code == 1
    assert "Error: cluster is already bootstrapped" in result.output


def test_bootstrap_invalid_cluster_config(state: Dict[str, Any], tmp_path: Path) -> None:
    path = tmp_path / "bad.toml"
    path.write_text('[cdm]\nnode_ip = "10.0.0.10"\ntoken = "t"\n', encoding="utf-8")

    result = CliRunner().invoke(main, ["cdm", "bootstrap", "--config", str(path)])

    assert result.exit_code == 1
    assert "missing [cluster] config table" in result.output


def test_wait_failure(state: Dict[str, Any]) -> None:
    state["wait_for_bootstrap"] = TerminalFailureError("bootstrap failed: bad dns", reason="bad dns")

    result = CliRunner().invoke(main, ["cdm", "wait", "--request-id", "42", "--wait-time", "5"])

    assert result.exit_code == 1
    assert "Error: bootstrap failed: bad dns" in result.output
    assert _calls(state) == [("wait_for_bootstrap", (42,), {"wait_time": 5.0})]


def test_entitle_prints_json(state: Dict[str, Any]) -> None:
    state["offline_entitle"] = [NodeDetails.model_validate({"boardSerial": "SN-1", "nodeId": "RVM-1"})]

    result = CliRunner().invoke(main, ["cdm", "entitle"])

    assert result.exit_code == 0, result.output
    nodes = json.loads(result.output)
    assert nodes[0]["boardSerial"] == "SN-1"
    assert nodes[0]["nodeId"] == "RVM-1"


def test_register(state: Dict[str, Any]) -> None:
    result = CliRunner().invoke(main, ["cdm", "register", "--auth-token", "tok"])

    assert result.exit_code == 0, result.output
    assert result.output == "registered_mode: Hybrid\n"
    assert _calls(state) == [("set_registered_mode", ("tok",), {})]


def test_invalid_log_level(state: Dict[str, Any]) -> None:
    result = CliRunner().invoke(main, ["--log-level", "loud", "cdm", "status"])

    assert result.exit_code == 2
    assert "invalid log level: loud" in result.output


def test_interrupt_cancels_context(state: Dict[str, Any]) -> None:
    state["is_bootstrapped"] = KeyboardInterrupt()

    result = CliRunner().invoke(main, ["cdm", "status"])

    assert result.exit_code == 1
    assert "Aborted" in result.output
    assert state["contexts"][0].done() is True
