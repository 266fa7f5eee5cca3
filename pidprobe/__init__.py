"""
PID probe: spawns placeholder processes until a target count or the
environment's process limit is reached, then cleans all of them up.
"""

__version__ = "0.1.0"
