"""
Feeder module.

Observable feeder configuration and the feed sequencer that drives the
pin actuator and applies cached vision offsets.
"""

from tape_feeder.feeder.config import (
    FeederConfig,
    Observable,
    PropertyChange,
    VisionConfig,
)
from tape_feeder.feeder.tape_feeder import FeedStep, TapeFeeder

__all__ = [
    "FeedStep",
    "FeederConfig",
    "Observable",
    "PropertyChange",
    "TapeFeeder",
    "VisionConfig",
]
