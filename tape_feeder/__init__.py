"""
Tape Feeder Package.

Feed sequencing for pin-driven tape feeders on a pick-and-place machine,
with camera template matching to correct mechanical drift.

Subpackages:
    geometry: Unit-tagged lengths, locations and vision offsets
    vision: Vision correction pass, offset cache, OpenCV matcher
    feeder: Observable feeder configuration and the feed sequencer
    hardware: Head / actuator / camera contracts and a simulated machine
    configs: Feeder YAML loading and saving
"""

__all__ = ["geometry", "vision", "feeder", "hardware", "configs"]
