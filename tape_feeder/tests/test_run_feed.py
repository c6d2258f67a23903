"""Tests for the dry-run feed script."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

from tape_feeder.configs.loader import (
    DEFAULT_CONFIG_PATH,
    load_feeder_config,
    load_simulation_config,
)
from tape_feeder.scripts import run_feed


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(run_feed, "setup_logging", lambda *a, **kw: [])


def run(monkeypatch: pytest.MonkeyPatch, *argv: str) -> None:
    monkeypatch.setattr(sys, "argv", ["run_feed", *argv])
    run_feed.main()


class TestBuildSimulatedMachine:
    def test_head_and_camera(self) -> None:
        sim = load_simulation_config()
        cfg = load_feeder_config()
        machine, head = run_feed.build_simulated_machine(sim, cfg)
        assert head.id == sim.head_id
        assert head.get_actuator(sim.actuator.id) is not None
        assert len(machine.cameras) == 1
        assert machine.cameras[0].head is head

    def test_vision_gets_placeholder_template(self) -> None:
        sim = load_simulation_config()
        cfg = load_feeder_config()
        cfg.vision.enabled = True
        run_feed.build_simulated_machine(sim, cfg)
        assert cfg.vision.template_image.shape == run_feed.SIM_TEMPLATE_SIZE


class TestMain:
    def test_plain_feed(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str],
    ) -> None:
        run(monkeypatch, "--feeds", "2", "--pick", "10", "15", "5")
        out = capsys.readouterr().out
        assert "Feed 1/2" in out
        assert "Feed 2/2" in out
        assert out.count("actuate  feed_pin ON") == 2
        assert "F5" in out

    def test_vision_feed(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str],
    ) -> None:
        run(monkeypatch, "--vision", "--pick", "10", "15", "5")
        out = capsys.readouterr().out
        assert "capture  sim_cam" in out
        assert "Next offset" in out

    def test_logging_options_forwarded(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls: list[tuple] = []
        monkeypatch.setattr(run_feed, "setup_logging", lambda *a, **kw: calls.append((a, kw)))
        log_file = str(tmp_path / "feed.log")
        run(monkeypatch, "--log-level", "DEBUG", "--log-file", log_file,
            "--log-json", "--log-max-bytes", "4096")

        (args, kwargs), = calls
        assert args == ("DEBUG", log_file)
        assert kwargs["json"] is True
        assert kwargs["max_bytes"] == 4096
        assert kwargs["context"] == {"app": "run_feed"}

    def test_missing_actuator_exits(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        data = yaml.safe_load(DEFAULT_CONFIG_PATH.read_text())
        data["feeder"]["actuator_id"] = "missing_pin"
        path = tmp_path / "feeder.yaml"
        path.write_text(yaml.safe_dump(data))

        with pytest.raises(SystemExit) as info:
            run(monkeypatch, "--config", str(path))
        assert info.value.code == 1
        assert "missing_pin" in capsys.readouterr().out

    def test_bad_config_exits(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        with pytest.raises(SystemExit):
            run(monkeypatch, "--config", str(tmp_path / "none.yaml"))
        assert "Error loading config" in capsys.readouterr().out
