#!/usr/bin/env python3
"""
Run Feed Script.

Dry-run one or more feeds against the simulated machine described in the
``simulation`` section of a feeder YAML, and print the issued motion.

Usage:
    python -m tape_feeder.scripts.run_feed
    python -m tape_feeder.scripts.run_feed --config feeders/t1.yaml --feeds 3
    python -m tape_feeder.scripts.run_feed --vision --pick 10 15 5
"""

from __future__ import annotations

import argparse
import logging
import sys

import numpy as np

from tape_feeder.configs.loader import (
    SimulationConfig,
    load_feeder_config,
    load_simulation_config,
)
from tape_feeder.errors import FeederError, FeedInterrupted, PostFeedVisionError
from tape_feeder.feeder.config import FeederConfig
from tape_feeder.feeder.tape_feeder import TapeFeeder
from tape_feeder.geometry.units import Location
from tape_feeder.hardware.interfaces import TemplateMatch
from tape_feeder.hardware.simulated import (
    ScriptedVisionProvider,
    SimulatedActuator,
    SimulatedCamera,
    SimulatedHead,
    SimulatedMachine,
)
from tape_feeder.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

SIM_TEMPLATE_SIZE = (32, 32)


def build_simulated_machine(
    sim: SimulationConfig,
    feeder_cfg: FeederConfig,
) -> tuple[SimulatedMachine, SimulatedHead]:
    """Create a simulated machine and head from *sim*.

    When the feeder uses vision, the camera reports the template at
    ``match_offset_px`` from the frame centre on every pass.  A blank
    template is installed if the configuration has none.
    """
    machine = SimulatedMachine(sim.native_units)
    head = SimulatedHead(sim.head_id, machine, safe_z=sim.safe_z)
    head.add_actuator(
        SimulatedActuator(sim.actuator.id, sim.actuator.location, machine),
    )

    if sim.camera is not None:
        w, h = sim.camera.frame_size
        tw, th = SIM_TEMPLATE_SIZE
        dx, dy = sim.camera.match_offset_px
        match = TemplateMatch(w / 2.0 - tw / 2.0 + dx, h / 2.0 - th / 2.0 + dy, 0.95)
        machine.add_camera(
            SimulatedCamera(
                "sim_cam",
                head,
                location=sim.camera.location,
                units_per_pixel=sim.camera.units_per_pixel,
                frame=np.zeros((h, w, 3), dtype=np.uint8),
                vision_provider=ScriptedVisionProvider(results=[[match]]),
            )
        )
        if feeder_cfg.vision.enabled and feeder_cfg.vision.template_image is None:
            feeder_cfg.vision.template_image = np.zeros((th, tw), dtype=np.uint8)

    return machine, head


def _print_events(machine: SimulatedMachine) -> None:
    for event in machine.events:
        kind, *args = event
        if kind == "move":
            x, y, z, c, rate = args
            rate_str = f" F{rate:g}" if rate is not None else ""
            print(f"  move     X{x:.3f} Y{y:.3f} Z{z:.3f} C{c:.3f}{rate_str}")
        elif kind == "safe_z":
            print(f"  safe_z   Z{args[0]:.3f}")
        elif kind == "actuate":
            print(f"  actuate  {args[0]} {'ON' if args[1] else 'OFF'}")
        else:
            print(f"  {kind:8s} {' '.join(str(a) for a in args)}")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dry-run tape feeds on a simulated machine",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Feeder YAML path (defaults to the packaged feeder.yaml)",
    )
    parser.add_argument(
        "--feeds",
        "-n",
        type=int,
        default=1,
        help="Number of consecutive feeds",
    )
    parser.add_argument(
        "--pick",
        type=float,
        nargs=3,
        metavar=("X", "Y", "Z"),
        help="Nominal pick location in machine units",
    )
    parser.add_argument(
        "--vision",
        action="store_true",
        help="Force vision correction on",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Also log to this file",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Write the log file as JSON lines",
    )
    parser.add_argument(
        "--log-max-bytes",
        type=int,
        help="Rotate the log file at this size",
    )

    args = parser.parse_args()

    setup_logging(
        args.log_level,
        args.log_file,
        json=args.log_json,
        max_bytes=args.log_max_bytes,
        quiet_libs=["PIL"],
        context={"app": "run_feed"},
    )

    try:
        feeder_cfg = load_feeder_config(args.config)
        sim = load_simulation_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}")
        sys.exit(1)

    if args.vision:
        feeder_cfg.vision.enabled = True
    feeder_cfg.vision.settle_time_s = 0.0

    machine, head = build_simulated_machine(sim, feeder_cfg)
    feeder = TapeFeeder(feeder_cfg)

    if args.pick:
        pick = Location(sim.native_units, *args.pick)
    else:
        pick = feeder_cfg.feed_start_location.convert_to_units(sim.native_units)

    for i in range(args.feeds):
        machine.clear_events()
        print(f"Feed {i + 1}/{args.feeds} from {feeder}")
        try:
            corrected = feeder.feed(head, pick)
        except FeedInterrupted as e:
            print(f"Feed interrupted at {e.step.name}: {e}")
            sys.exit(1)
        except PostFeedVisionError as e:
            print(f"Fed, but vision failed: {e}")
            print(f"Pick location (uncorrected for next feed): {e.pick_location}")
            sys.exit(1)
        except FeederError as e:
            print(f"Error: {e}")
            sys.exit(1)
        _print_events(machine)
        print(f"Pick at {corrected}")
        if feeder.vision_offset is not None:
            print(f"Next offset {feeder.vision_offset}")


if __name__ == "__main__":
    main()
