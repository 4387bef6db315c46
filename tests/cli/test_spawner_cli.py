"""Tests for the spawner CLI: stdin/stdout transport via CliRunner.

``build_spawner`` is replaced with a Fargate spawner over the in-memory
stub backend so no AWS access is needed.
"""

from __future__ import annotations

import importlib
import io
import json
import logging

import pytest
import structlog
from botocore.exceptions import ProfileNotFound
from rich.console import Console
from typer.testing import CliRunner

import spawner.logging as spawner_logging
from conftest import FAST_POLL, make_request
from spawner.cli import app
from spawner.runtimes.fargate import FargateSpawner
from spawner.runtimes.stub import StubClusterBackend
from spawner.settings import clear_settings_cache
from spawner.world import decode_world, decode_worlds

cli_module = importlib.import_module("spawner.cli.app")
runner = CliRunner()


# ─── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Route logs to pytest's stderr, outside the CliRunner streams."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    monkeypatch.setattr(spawner_logging, "_configured", False)
    spawner_logging.configure_logging(level="ERROR", force=True)
    # Drop the settings cached above so per-test SPAWNER_* env vars apply
    clear_settings_cache()
    # Module loggers must stay uncached so later tests can capture them
    structlog.configure(cache_logger_on_first_use=False)
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def err_stream(monkeypatch) -> io.StringIO:
    stream = io.StringIO()
    monkeypatch.setattr(cli_module, "err_console", Console(file=stream, width=200))
    return stream


@pytest.fixture
def backend(monkeypatch) -> StubClusterBackend:
    backend = StubClusterBackend(run_ids=["run-abc"], address="203.0.113.7")
    spawner = FargateSpawner(backend, poll_interval=FAST_POLL, compensation_timeout=1.0)
    monkeypatch.setattr(cli_module, "build_spawner", lambda settings: spawner)
    return backend


# ─── spawn ───────────────────────────────────────────────────────────────


class TestSpawnCommand:
    def test_spawn_writes_world_array(self, backend, err_stream):
        result = runner.invoke(app, ["spawn"], input=make_request())

        assert result.exit_code == 0, err_stream.getvalue()
        assert result.stdout.endswith("]\n")
        [world] = decode_worlds(result.stdout)
        assert world.id == "run-abc"
        assert world.addr == "203.0.113.7:8080"
        assert world.spawner == "ecs.fargate-v1"

    def test_spawn_bad_payload(self, backend, err_stream):
        result = runner.invoke(app, ["spawn"], input="{not json")

        assert result.exit_code == 1
        assert result.stdout == ""
        assert "Error (DECODE)" in err_stream.getvalue()
        assert backend.submitted == []

    def test_spawn_rejected(self, backend, err_stream):
        backend.fail_submit = True
        result = runner.invoke(app, ["spawn"], input=make_request())

        assert result.exit_code == 1
        assert result.stdout == ""
        assert "Error (BACKEND_REJECTED)" in err_stream.getvalue()

    def test_spawn_timeout_stops_task(self, monkeypatch, err_stream):
        backend = StubClusterBackend(statuses=["PENDING"], run_ids=["run-abc"])
        spawner = FargateSpawner(backend, poll_interval=FAST_POLL)
        monkeypatch.setattr(cli_module, "build_spawner", lambda settings: spawner)

        result = runner.invoke(app, ["spawn", "--timeout", "0.2"], input=make_request())

        assert result.exit_code == 1
        assert "Error (CANCELLED)" in err_stream.getvalue()
        assert backend.stopped == [("c1", "run-abc")]

    def test_spawn_invalid_port_setting(self, monkeypatch, err_stream):
        monkeypatch.setenv("SPAWNER_SERVICE_PORT", "0")
        result = runner.invoke(app, ["spawn"], input=make_request())

        assert result.exit_code == 1
        assert result.stdout == ""
        assert result.exception is None or isinstance(result.exception, SystemExit)
        err = err_stream.getvalue()
        assert "Error (CONFIG)" in err
        assert "service_port" in err
        assert len(err.strip().splitlines()) == 1

    def test_spawn_missing_aws_profile(self, monkeypatch, err_stream):
        def build(settings):
            raise ProfileNotFound(profile="nope")

        monkeypatch.setattr(cli_module, "build_spawner", build)
        result = runner.invoke(app, ["spawn"], input=make_request())

        assert result.exit_code == 1
        assert result.stdout == ""
        assert "Error (CONFIG)" in err_stream.getvalue()
        assert "nope" in err_stream.getvalue()


# ─── kill ────────────────────────────────────────────────────────────────


class TestKillCommand:
    def test_kill_after_spawn(self, backend, err_stream):
        spawned = runner.invoke(app, ["spawn"], input=make_request())
        [world] = decode_worlds(spawned.stdout)

        result = runner.invoke(app, ["kill"], input=world.to_json())

        assert result.exit_code == 0, err_stream.getvalue()
        assert result.stdout == ""
        assert backend.stopped == [("c1", "run-abc")]

    def test_kill_bad_world(self, backend, err_stream):
        result = runner.invoke(app, ["kill"], input="[]")

        assert result.exit_code == 1
        assert "Error (DECODE)" in err_stream.getvalue()
        assert backend.stopped == []

    def test_kill_foreign_world(self, backend, err_stream):
        world = {"id": "x", "spawner": "other-v1", "details": {"arn": "x", "cluster_arn": "c1"}}
        result = runner.invoke(app, ["kill"], input=json.dumps(world))

        assert result.exit_code == 1
        assert backend.stopped == []


# ─── ps ──────────────────────────────────────────────────────────────────


class TestPsCommand:
    def test_ps_lists_running(self, backend, err_stream):
        backend.add_unit("run-1", "c1")
        backend.add_unit("run-2", "c1", status="STOPPED")

        result = runner.invoke(app, ["ps", "--cluster", "c1"])

        assert result.exit_code == 0, err_stream.getvalue()
        worlds = decode_worlds(result.stdout)
        assert [w.id for w in worlds] == ["run-1"]

    def test_ps_empty(self, backend):
        result = runner.invoke(app, ["ps", "-c", "c1"])
        assert result.exit_code == 0
        assert result.stdout == "[]\n"

    def test_ps_requires_cluster(self, backend):
        result = runner.invoke(app, ["ps"])
        assert result.exit_code != 0

    def test_ps_invalid_port_setting(self, monkeypatch, err_stream):
        monkeypatch.setenv("SPAWNER_SERVICE_PORT", "http")
        result = runner.invoke(app, ["ps", "-c", "c1"])

        assert result.exit_code == 1
        assert result.stdout == ""
        assert "Error (CONFIG)" in err_stream.getvalue()
        assert "service_port" in err_stream.getvalue()

    def test_ps_listing_can_be_killed(self, backend, err_stream):
        backend.add_unit("run-1", "c1")
        listed = runner.invoke(app, ["ps", "-c", "c1"])
        [world] = decode_worlds(listed.stdout)

        result = runner.invoke(app, ["kill"], input=world.to_json())

        assert result.exit_code == 0, err_stream.getvalue()
        assert backend.stopped == [("c1", "run-1")]


# ─── example / version ───────────────────────────────────────────────────


class TestMiscCommands:
    def test_example_is_valid_request(self, backend):
        result = runner.invoke(app, ["example"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["name"] == "video-encoder"
        assert payload["cluster"] == "keepinmind"
        assert payload["overrides"][0]["command"] == ["ffmpeg", "-i", "this", "-o", "that"]

    def test_example_round_trips_through_spawn(self, backend, err_stream):
        example = runner.invoke(app, ["example"]).stdout
        result = runner.invoke(app, ["spawn"], input=example)

        assert result.exit_code == 0, err_stream.getvalue()
        world = decode_world(json.dumps(json.loads(result.stdout)[0]))
        assert world.galaxy == "keepinmind"
        assert backend.submitted[0]["template"] == "video-encoder"

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert result.stdout.strip()

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.strip()

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "spawn" in result.output

    def test_unknown_log_level(self, monkeypatch, backend, err_stream):
        monkeypatch.setattr(spawner_logging, "_configured", False)
        result = runner.invoke(app, ["--log-level", "loud", "ps", "-c", "c1"])

        assert result.exit_code == 1
        assert result.stdout == ""
        assert "Error (CONFIG)" in err_stream.getvalue()
        assert "LOUD" in err_stream.getvalue()
