"""Feeder configuration loading, validation and saving."""

from tape_feeder.configs.loader import (
    ConfigError,
    SimActuatorConfig,
    SimCameraConfig,
    SimulationConfig,
    feeder_to_dict,
    load_feeder_config,
    load_simulation_config,
    save_feeder_config,
)

__all__ = [
    "ConfigError",
    "SimActuatorConfig",
    "SimCameraConfig",
    "SimulationConfig",
    "feeder_to_dict",
    "load_feeder_config",
    "load_simulation_config",
    "save_feeder_config",
]
