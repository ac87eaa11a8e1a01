"""Incremental graph layout engine.

Projects a source hierarchy into a visible node/link snapshot, lays it out
off the event loop with a hybrid tree/grid algorithm, and caches positions
by snapshot fingerprint so revisiting a graph shape is instant.
"""

__version__ = "0.1.0"
