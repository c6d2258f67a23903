"""Tests for the feeder YAML loader and the observable configuration.

Validates that:
    - feeder.yaml shipped with the package loads
    - Save then load preserves locations, lengths and vision settings
    - The template PNG is written only when the template was replaced
    - Unrelated YAML sections survive a save
    - Invalid values raise ConfigError
    - Property changes notify listeners
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import yaml

from tape_feeder.configs import loader
from tape_feeder.configs.loader import (
    ConfigError,
    load_feeder_config,
    load_simulation_config,
    save_feeder_config,
)
from tape_feeder.feeder.config import FeederConfig, PropertyChange, VisionConfig
from tape_feeder.geometry.units import Length, LengthUnit, Location, Rectangle

MM = LengthUnit.MILLIMETERS


def write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> FeederConfig:
    """Load the default feeder.yaml shipped with the package."""
    return load_feeder_config()


@pytest.fixture()
def template() -> np.ndarray:
    rng = np.random.default_rng(3)
    return rng.integers(0, 256, (24, 32), dtype=np.uint8)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadDefault:
    def test_feeder_fields(self, config: FeederConfig) -> None:
        assert config.id
        assert config.actuator_id
        assert config.feed_rate is not None and config.feed_rate.value > 0

    def test_resource_dir_is_yaml_dir(self, config: FeederConfig) -> None:
        assert config.vision.resource_dir == loader.DEFAULT_CONFIG_PATH.parent

    def test_simulation_section(self) -> None:
        sim = load_simulation_config()
        assert sim.actuator.id == load_feeder_config().actuator_id
        assert sim.camera is not None
        assert sim.camera.frame_size[0] > 0 and sim.camera.frame_size[1] > 0

    def test_units_short_names(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "f.yaml", {
            "feeder": {
                "actuator_id": "pin",
                "feed_rate": {"value": 0.2, "units": "in"},
                "feed_start_location": {"units": "in", "x": 1, "y": 2},
            },
        })
        cfg = load_feeder_config(path)
        assert cfg.feed_rate == Length(0.2, LengthUnit.INCHES)
        assert cfg.feed_start_location == Location(LengthUnit.INCHES, 1.0, 2.0, 0.0, 0.0)
        assert not cfg.vision.enabled


class TestValidation:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_feeder_config(tmp_path / "nope.yaml")

    def test_missing_feeder_section(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "f.yaml", {"simulation": {}})
        with pytest.raises(ConfigError, match="feeder"):
            load_feeder_config(path)

    def test_bad_unit(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "f.yaml", {
            "feeder": {"feed_start_location": {"units": "furlong", "x": 1}},
        })
        with pytest.raises(ConfigError, match="furlong"):
            load_feeder_config(path)

    def test_non_positive_feed_rate(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "f.yaml", {
            "feeder": {"feed_rate": {"value": -1.0, "units": "mm"}},
        })
        with pytest.raises(ConfigError, match="positive"):
            load_feeder_config(path)

    def test_negative_settle_time(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "f.yaml", {
            "feeder": {"vision": {"settle_time_s": -0.1}},
        })
        with pytest.raises(ConfigError, match="settle_time_s"):
            load_feeder_config(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "f.yaml"
        path.write_text("")
        with pytest.raises(ConfigError, match="Empty"):
            load_feeder_config(path)

    def test_vision_section_not_a_mapping(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "f.yaml", {"feeder": {"vision": True}})
        with pytest.raises(ConfigError, match="feeder.vision"):
            load_feeder_config(path)

    @pytest.mark.parametrize("key", ["actuator", "camera"])
    def test_simulation_subsection_not_a_mapping(self, tmp_path: Path, key: str) -> None:
        sim = {"actuator": {"id": "pin"}, key: "feed_pin"}
        path = write_yaml(tmp_path / "f.yaml", {"simulation": sim})
        with pytest.raises(ConfigError, match=f"simulation.{key}"):
            load_simulation_config(path)

    def test_simulation_requires_actuator(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path / "f.yaml", {"simulation": {"head_id": "H1"}})
        with pytest.raises(ConfigError, match="actuator"):
            load_simulation_config(path)


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------


class TestSave:
    def test_roundtrip(
        self, tmp_path: Path, config: FeederConfig, template: np.ndarray,
    ) -> None:
        config.vision.enabled = True
        config.vision.area_of_interest = Rectangle(10, 20, 300, 200)
        config.vision.min_match_score = 0.7
        config.vision.template_image = template
        config.feed_end_location = Location(LengthUnit.INCHES, 0.5, 0.25, 0.1, 0.0)

        path = tmp_path / "feeder.yaml"
        save_feeder_config(config, path, resource_dir=tmp_path)
        back = load_feeder_config(path)

        assert back.id == config.id
        assert back.feed_rate == config.feed_rate
        assert back.feed_end_location == config.feed_end_location
        assert back.vision.enabled
        assert back.vision.area_of_interest == Rectangle(10, 20, 300, 200)
        assert back.vision.min_match_score == 0.7
        assert back.vision.template_image_name.startswith("tmpl_")
        assert np.array_equal(back.vision.template_image, template)

    def test_template_written_only_when_dirty(
        self,
        tmp_path: Path,
        config: FeederConfig,
        template: np.ndarray,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        saved: list[Path] = []
        real_save = loader.atomic_save_image

        def counting_save(img: np.ndarray, path: Path) -> None:
            saved.append(Path(path))
            real_save(img, path)

        monkeypatch.setattr(loader, "atomic_save_image", counting_save)

        path = tmp_path / "feeder.yaml"
        save_feeder_config(config, path, resource_dir=tmp_path)
        assert saved == []

        config.vision.template_image = template
        assert config.vision.template_image_dirty
        save_feeder_config(config, path, resource_dir=tmp_path)
        assert len(saved) == 1
        assert not config.vision.template_image_dirty

        save_feeder_config(config, path, resource_dir=tmp_path)
        assert len(saved) == 1

        # Replacing the image reuses the persisted name
        config.vision.template_image = template.copy()
        save_feeder_config(config, path, resource_dir=tmp_path)
        assert saved[1] == saved[0]

    def test_save_next_to_new_yaml(
        self, tmp_path: Path, config: FeederConfig, template: np.ndarray,
    ) -> None:
        package_dir = loader.DEFAULT_CONFIG_PATH.parent
        before = set(package_dir.glob("tmpl_*.png"))

        config.vision.template_image = template
        path = tmp_path / "f.yaml"
        save_feeder_config(config, path)

        assert set(package_dir.glob("tmpl_*.png")) == before
        assert (tmp_path / config.vision.template_image_name).exists()
        assert config.vision.resource_dir == tmp_path
        assert np.array_equal(load_feeder_config(path).vision.template_image, template)

    def test_clean_template_copied_on_move(
        self, tmp_path: Path, config: FeederConfig, template: np.ndarray,
    ) -> None:
        first = tmp_path / "a" / "f.yaml"
        first.parent.mkdir()
        config.vision.template_image = template
        save_feeder_config(config, first)

        moved = load_feeder_config(first)
        assert not moved.vision.template_image_dirty
        second = tmp_path / "b" / "f.yaml"
        second.parent.mkdir()
        save_feeder_config(moved, second)

        assert np.array_equal(load_feeder_config(second).vision.template_image, template)

    def test_cleared_template_saved_as_null(
        self, tmp_path: Path, config: FeederConfig, template: np.ndarray,
    ) -> None:
        path = tmp_path / "f.yaml"
        config.vision.template_image = template
        save_feeder_config(config, path)

        back = load_feeder_config(path)
        back.vision.template_image = None
        assert back.vision.template_image is None
        assert back.vision.template_image_name is None

        save_feeder_config(back, path)
        assert yaml.safe_load(path.read_text())["feeder"]["vision"]["template_image"] is None
        assert load_feeder_config(path).vision.template_image is None

    def test_template_loaded_lazily(
        self, tmp_path: Path, config: FeederConfig, template: np.ndarray,
    ) -> None:
        config.vision.template_image = template
        path = tmp_path / "feeder.yaml"
        save_feeder_config(config, path, resource_dir=tmp_path)

        back = load_feeder_config(path)
        (tmp_path / back.vision.template_image_name).unlink()
        with pytest.raises(FileNotFoundError):
            _ = back.vision.template_image

    def test_other_sections_preserved(self, tmp_path: Path, config: FeederConfig) -> None:
        path = tmp_path / "feeder.yaml"
        path.write_text(loader.DEFAULT_CONFIG_PATH.read_text())
        config.feed_rate = Length(8.0, MM)
        save_feeder_config(config, path)

        assert load_feeder_config(path).feed_rate == Length(8.0, MM)
        assert load_simulation_config(path) == load_simulation_config()


# ---------------------------------------------------------------------------
# Observable configuration
# ---------------------------------------------------------------------------


class TestListeners:
    def test_filtered_listener(self) -> None:
        cfg = FeederConfig()
        events: list[PropertyChange] = []
        cfg.add_listener(events.append, "feed_rate")

        cfg.actuator_id = "pin"
        cfg.feed_rate = Length(5.0, MM)

        assert len(events) == 1
        assert events[0].name == "feed_rate"
        assert events[0].old_value is None
        assert events[0].new_value == Length(5.0, MM)
        assert events[0].source is cfg

    def test_global_listener(self) -> None:
        cfg = FeederConfig()
        names: list[str] = []
        cfg.add_listener(lambda e: names.append(e.name))
        cfg.actuator_id = "pin"
        cfg.feed_start_location = Location(MM, 1.0)
        assert names == ["actuator_id", "feed_start_location"]

    def test_unchanged_value_is_silent(self) -> None:
        cfg = FeederConfig(actuator_id="pin")
        events: list[PropertyChange] = []
        cfg.add_listener(events.append)
        cfg.actuator_id = "pin"
        assert events == []

    def test_failing_listener_does_not_block_others(self) -> None:
        cfg = FeederConfig()
        seen: list[str] = []

        def broken(event: PropertyChange) -> None:
            raise RuntimeError("boom")

        cfg.add_listener(broken)
        cfg.add_listener(lambda e: seen.append(e.name))
        cfg.actuator_id = "pin"
        assert seen == ["actuator_id"]

    def test_remove_listener(self) -> None:
        cfg = FeederConfig()
        events: list[PropertyChange] = []
        cfg.add_listener(events.append)
        cfg.remove_listener(events.append)
        cfg.actuator_id = "pin"
        assert events == []

    def test_template_change_marks_dirty(self, template: np.ndarray) -> None:
        vision = VisionConfig()
        events: list[PropertyChange] = []
        vision.add_listener(events.append, "template_image")

        vision.template_image = template
        assert vision.template_image_dirty
        assert len(events) == 1

        vision.mark_template_persisted("t.png")
        assert not vision.template_image_dirty
        assert vision.template_image_name == "t.png"

        # Same object again is not a change
        vision.template_image = template
        assert not vision.template_image_dirty

    def test_clearing_template_drops_name(self) -> None:
        vision = VisionConfig(template_image_name="t.png")
        names: list[str] = []
        vision.add_listener(lambda e: names.append(e.name))

        vision.template_image = None
        assert vision.template_image_name is None
        assert not vision.template_image_dirty
        assert names == ["template_image_name"]

    def test_negative_settle_time_rejected(self) -> None:
        with pytest.raises(ValueError):
            VisionConfig().settle_time_s = -1.0
