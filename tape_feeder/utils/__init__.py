"""Filesystem and logging helpers shared by the feeder package."""
