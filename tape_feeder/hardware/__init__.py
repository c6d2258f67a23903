"""
Hardware collaborator module.

Protocols for the head, actuator, camera, machine and vision provider
the feeder drives, plus an in-process simulated machine for dry runs.
"""

from tape_feeder.hardware.interfaces import (
    Actuator,
    Camera,
    Head,
    Machine,
    Position,
    TemplateMatch,
    VisionProvider,
)
from tape_feeder.hardware.simulated import (
    MotionError,
    ScriptedVisionProvider,
    SimulatedActuator,
    SimulatedCamera,
    SimulatedHead,
    SimulatedMachine,
)

__all__ = [
    "Actuator",
    "Camera",
    "Head",
    "Machine",
    "MotionError",
    "Position",
    "ScriptedVisionProvider",
    "SimulatedActuator",
    "SimulatedCamera",
    "SimulatedHead",
    "SimulatedMachine",
    "TemplateMatch",
    "VisionProvider",
]
