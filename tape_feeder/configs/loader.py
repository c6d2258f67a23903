"""Configuration loader for tape feeders.

Loads ``feeder.yaml`` into an observable ``FeederConfig`` and writes it
back.  The template image is a PNG side-file next to the YAML (or in an
explicit resource directory), referenced by name; it is read lazily and
re-encoded on save only when it was replaced or the YAML moved to
another directory.

An optional ``simulation`` section describes the simulated machine used
by ``tape_feeder.scripts.run_feed`` for dry runs.

Locations are written as ``{units, x, y, z, rotation}`` and lengths as
``{value, units}``.  Units accept short names (``mm``, ``in``, ...).

Usage::

    from tape_feeder.configs.loader import load_feeder_config, save_feeder_config
    cfg = load_feeder_config()                         # default path
    cfg = load_feeder_config("/machine/feeders/t1.yaml")
    cfg.feed_rate = Length(8.0, LengthUnit.MILLIMETERS)
    save_feeder_config(cfg, "/machine/feeders/t1.yaml")
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tape_feeder.feeder.config import FeederConfig, VisionConfig
from tape_feeder.geometry.units import Length, LengthUnit, Location, Rectangle
from tape_feeder.utils.fs import atomic_save_image, atomic_yaml_dump, load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "feeder.yaml"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Simulation dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimActuatorConfig:
    """Feed pin actuator on the simulated head."""

    id: str
    location: Location


@dataclass(frozen=True)
class SimCameraConfig:
    """Simulated head camera.

    ``match_offset_px`` is where the simulated vision provider reports
    the template's top-left corner, relative to a perfectly centred
    match.
    """

    location: Location
    units_per_pixel: Location
    frame_size: tuple[int, int]
    match_offset_px: tuple[float, float] = (0.0, 0.0)


@dataclass(frozen=True)
class SimulationConfig:
    """Simulated machine used for dry runs."""

    native_units: LengthUnit
    head_id: str
    safe_z: float
    actuator: SimActuatorConfig
    camera: SimCameraConfig | None = None


# ---------------------------------------------------------------------------
# Internal parsing helpers
# ---------------------------------------------------------------------------


def _as_mapping(data: Any, where: str) -> dict[str, Any]:
    """Return *data* as a section mapping; ``None`` becomes ``{}``."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be a mapping, got {data!r}")
    return data


def _parse_units(raw: Any, where: str) -> LengthUnit:
    try:
        return LengthUnit.parse(raw)
    except ValueError as exc:
        raise ConfigError(f"{where}: {exc}") from exc


def _parse_location(data: Any, where: str) -> Location:
    """Parse ``{units, x, y, z, rotation}``; missing coordinates are 0."""
    if data is None:
        return Location(LengthUnit.MILLIMETERS)
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be a mapping, got {data!r}")
    try:
        return Location(
            units=_parse_units(data.get("units", "mm"), where),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            z=float(data.get("z", 0.0)),
            rotation=float(data.get("rotation", 0.0)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{where} has a non-numeric coordinate: {exc}") from exc


def _parse_length(data: Any, where: str) -> Length | None:
    if data is None:
        return None
    if not isinstance(data, dict) or "value" not in data:
        raise ConfigError(f"{where} must be a mapping with 'value', got {data!r}")
    value = float(data["value"])
    if value <= 0:
        raise ConfigError(f"{where} must be positive, got {value}")
    return Length(value, _parse_units(data.get("units", "mm"), where))


def _parse_rectangle(data: Any, where: str) -> Rectangle:
    if data is None:
        return Rectangle()
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be a mapping, got {data!r}")
    try:
        return Rectangle(
            x=int(data.get("x", 0)),
            y=int(data.get("y", 0)),
            width=int(data.get("width", 0)),
            height=int(data.get("height", 0)),
        )
    except ValueError as exc:
        raise ConfigError(f"{where}: {exc}") from exc


def _parse_pair(raw: Any, where: str, cast: type = float) -> tuple:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ConfigError(f"{where} must be a 2-element list, got {raw!r}")
    return (cast(raw[0]), cast(raw[1]))


def _parse_vision(data: Any) -> VisionConfig:
    """Parse the ``feeder.vision`` section."""
    data = _as_mapping(data, "feeder.vision")
    settle = float(data.get("settle_time_s", 0.2))
    if settle < 0:
        raise ConfigError(f"vision.settle_time_s must be >= 0, got {settle}")
    min_score = data.get("min_match_score")
    name = data.get("template_image")
    return VisionConfig(
        enabled=bool(data.get("enabled", False)),
        template_image_name=str(name) if name else None,
        area_of_interest=_parse_rectangle(
            data.get("area_of_interest"), "vision.area_of_interest",
        ),
        template_top_left=_parse_location(
            data.get("template_top_left"), "vision.template_top_left",
        ),
        template_bottom_right=_parse_location(
            data.get("template_bottom_right"), "vision.template_bottom_right",
        ),
        settle_time_s=settle,
        min_match_score=float(min_score) if min_score is not None else None,
    )


def _parse_feeder(data: dict[str, Any]) -> FeederConfig:
    actuator_id = data.get("actuator_id")
    return FeederConfig(
        feeder_id=str(data.get("id", "tape_feeder")),
        feed_start_location=_parse_location(
            data.get("feed_start_location"), "feeder.feed_start_location",
        ),
        feed_end_location=_parse_location(
            data.get("feed_end_location"), "feeder.feed_end_location",
        ),
        feed_rate=_parse_length(data.get("feed_rate"), "feeder.feed_rate"),
        actuator_id=str(actuator_id) if actuator_id is not None else None,
        vision=_parse_vision(data.get("vision")),
    )


def _parse_simulation(data: dict[str, Any]) -> SimulationConfig:
    act = _as_mapping(data.get("actuator"), "simulation.actuator")
    if "id" not in act:
        raise ConfigError("simulation.actuator.id is required")
    cam = _as_mapping(data.get("camera"), "simulation.camera")
    camera = None
    if cam:
        camera = SimCameraConfig(
            location=_parse_location(cam.get("location"), "simulation.camera.location"),
            units_per_pixel=_parse_location(
                cam.get("units_per_pixel"), "simulation.camera.units_per_pixel",
            ),
            frame_size=_parse_pair(
                cam.get("frame_size", [640, 480]), "simulation.camera.frame_size", int,
            ),
            match_offset_px=_parse_pair(
                cam.get("match_offset_px", [0.0, 0.0]), "simulation.camera.match_offset_px",
            ),
        )
    return SimulationConfig(
        native_units=_parse_units(data.get("native_units", "mm"), "simulation.native_units"),
        head_id=str(data.get("head_id", "H1")),
        safe_z=float(data.get("safe_z", 0.0)),
        actuator=SimActuatorConfig(
            id=str(act["id"]),
            location=_parse_location(act.get("location"), "simulation.actuator.location"),
        ),
        camera=camera,
    )


def _load_raw(path: str | Path | None) -> tuple[Path, dict[str, Any]]:
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    logger.info("Loading configuration from %s", path)
    data = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return path, data


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def _location_to_dict(loc: Location) -> dict[str, Any]:
    return {
        "units": loc.units.short_name,
        "x": loc.x,
        "y": loc.y,
        "z": loc.z,
        "rotation": loc.rotation,
    }


def _length_to_dict(length: Length | None) -> dict[str, Any] | None:
    if length is None:
        return None
    return {"value": length.value, "units": length.units.short_name}


def feeder_to_dict(config: FeederConfig) -> dict[str, Any]:
    """Serialise *config* to the ``feeder`` YAML section."""
    v = config.vision
    aoi = v.area_of_interest
    return {
        "id": config.id,
        "actuator_id": config.actuator_id,
        "feed_rate": _length_to_dict(config.feed_rate),
        "feed_start_location": _location_to_dict(config.feed_start_location),
        "feed_end_location": _location_to_dict(config.feed_end_location),
        "vision": {
            "enabled": v.enabled,
            "template_image": v.template_image_name,
            "area_of_interest": {
                "x": aoi.x, "y": aoi.y, "width": aoi.width, "height": aoi.height,
            },
            "template_top_left": _location_to_dict(v.template_top_left),
            "template_bottom_right": _location_to_dict(v.template_bottom_right),
            "settle_time_s": v.settle_time_s,
            "min_match_score": v.min_match_score,
        },
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_feeder_config(
    path: str | Path | None = None,
    resource_dir: str | Path | None = None,
) -> FeederConfig:
    """Load and validate a feeder configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to the feeder YAML.  ``None`` loads the default shipped
        alongside this module.
    resource_dir : str | Path | None
        Directory holding the template image.  Defaults to the YAML's
        directory.

    Returns
    -------
    FeederConfig
        Configuration bound to *resource_dir* for lazy template loading.

    Raises
    ------
    ConfigError
        If a field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    path, data = _load_raw(path)
    section = data.get("feeder")
    if not isinstance(section, dict):
        raise ConfigError(f"{path} has no 'feeder' section")
    try:
        config = _parse_feeder(section)
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid feeder configuration in {path}: {exc}") from exc

    config.vision.resolve(resource_dir if resource_dir is not None else path.parent)
    logger.info(
        "Loaded feeder %s (actuator %s, vision %s)",
        config.id,
        config.actuator_id,
        "on" if config.vision.enabled else "off",
    )
    return config


def load_simulation_config(path: str | Path | None = None) -> SimulationConfig:
    """Load the ``simulation`` section of a feeder YAML.

    Raises
    ------
    ConfigError
        If the section is absent or invalid.
    """
    path, data = _load_raw(path)
    section = data.get("simulation")
    if not isinstance(section, dict):
        raise ConfigError(f"{path} has no 'simulation' section")
    try:
        return _parse_simulation(section)
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid simulation configuration in {path}: {exc}") from exc


def save_feeder_config(
    config: FeederConfig,
    path: str | Path,
    resource_dir: str | Path | None = None,
) -> None:
    """Write *config* to YAML alongside its template image.

    The template PNG is written to *resource_dir* (default: the YAML's
    directory) when it was replaced, or when the configuration is being
    saved to a different directory than the one it was loaded from.  An
    unnamed template gets a new ``tmpl_<hex>.png``.  Other sections
    already present in the file (e.g. ``simulation``) are preserved.
    """
    path = Path(path)
    vision = config.vision
    resource_dir = Path(resource_dir) if resource_dir is not None else path.parent
    moved = (
        vision.resource_dir is None
        or vision.resource_dir.resolve() != resource_dir.resolve()
    )

    # Read before re-binding: a clean template still lives in the old directory
    template = vision.template_image
    if template is not None and (vision.template_image_dirty or moved):
        name = vision.template_image_name or f"tmpl_{uuid.uuid4().hex[:12]}.png"
        atomic_save_image(template, resource_dir / name)
        vision.mark_template_persisted(name)
        logger.info("Saved template image %s", resource_dir / name)
    vision.resolve(resource_dir)

    data: dict[str, Any] = {}
    if path.exists():
        existing = load_yaml(path)
        if isinstance(existing, dict):
            data = existing
    data["feeder"] = feeder_to_dict(config)
    atomic_yaml_dump(data, path)
    logger.info("Saved feeder %s to %s", config.id, path)
