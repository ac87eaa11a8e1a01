"""
Configuration and Feature Flags for the Layout Engine

Knobs are plain values with environment variable overrides so deployments can
tune them without code changes. Resolved values are validated by a pydantic
model; a bad value fails at load time instead of deep inside a layout pass.

Usage:
    from graphlayout.config.settings import load_settings, is_enabled

    settings = load_settings()
    cache = LayoutCacheStore(max_entries=settings.memory_cache_size)

    if is_enabled('durable_layout_cache'):
        durable = FileLayoutStore(settings.cache_dir)

Environment Variables:
    GRAPH_LAYOUT_MEMORY_CACHE_SIZE=64       - Memory tier soft limit (entries)
    GRAPH_LAYOUT_WORKERS=1                  - Worker unit count
    GRAPH_LAYOUT_WORKER_BACKEND=subprocess  - subprocess | thread
    GRAPH_LAYOUT_WORKER_TIMEOUT=30          - Seconds before a unit is restarted
    GRAPH_LAYOUT_CANVAS_WIDTH=1200          - Canvas width fed into spacing
    GRAPH_LAYOUT_CANVAS_HEIGHT=800          - Canvas height fed into spacing
    GRAPH_LAYOUT_CACHE_DIR=~/.cache/graph-layout-engine
    GRAPH_LAYOUT_DURABLE_CACHE=true/false   - Toggle the durable cache tier
"""

import os
from pathlib import Path
from typing import Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field


DEFAULT_CACHE_DIR = Path("~/.cache/graph-layout-engine").expanduser()


# Feature flags with environment variable overrides
FEATURE_FLAGS: Dict[str, bool] = {
    # Persist layouts across restarts
    'durable_layout_cache': os.getenv('GRAPH_LAYOUT_DURABLE_CACHE', 'true').lower() == 'true',
}


class LayoutSettings(BaseModel):
    """Resolved engine configuration."""

    memory_cache_size: int = Field(default=64, gt=0)
    worker_count: int = Field(default=1, gt=0)
    worker_backend: Literal["subprocess", "thread"] = "subprocess"
    worker_timeout: float = Field(default=30.0, gt=0)
    canvas_width: float = Field(default=1200.0, gt=0)
    canvas_height: float = Field(default=800.0, gt=0)
    cache_dir: Path = DEFAULT_CACHE_DIR
    durable_cache: bool = True


_ENV_KEYS = {
    'memory_cache_size': 'GRAPH_LAYOUT_MEMORY_CACHE_SIZE',
    'worker_count': 'GRAPH_LAYOUT_WORKERS',
    'worker_backend': 'GRAPH_LAYOUT_WORKER_BACKEND',
    'worker_timeout': 'GRAPH_LAYOUT_WORKER_TIMEOUT',
    'canvas_width': 'GRAPH_LAYOUT_CANVAS_WIDTH',
    'canvas_height': 'GRAPH_LAYOUT_CANVAS_HEIGHT',
    'cache_dir': 'GRAPH_LAYOUT_CACHE_DIR',
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> LayoutSettings:
    """
    Resolve settings from the environment.

    Args:
        environ: Mapping to read instead of os.environ (for tests)

    Returns:
        Validated LayoutSettings

    Raises:
        ValueError: If a value fails validation (pydantic ValidationError)

    Example:
        >>> load_settings({'GRAPH_LAYOUT_WORKERS': '2'}).worker_count
        2
    """
    env = os.environ if environ is None else environ
    values = {}
    for field_name, env_key in _ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is None or raw == '':
            continue
        values[field_name] = Path(raw).expanduser() if field_name == 'cache_dir' else raw

    if environ is None:
        values['durable_cache'] = FEATURE_FLAGS['durable_layout_cache']
    elif 'GRAPH_LAYOUT_DURABLE_CACHE' in env:
        values['durable_cache'] = env['GRAPH_LAYOUT_DURABLE_CACHE'].lower() == 'true'

    return LayoutSettings(**values)


def is_enabled(flag: str) -> bool:
    """
    Check if a feature flag is enabled.

    Raises:
        KeyError: If flag name is not recognized
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    return FEATURE_FLAGS[flag]


def set_flag(flag: str, enabled: bool) -> None:
    """
    Programmatically set a feature flag (for testing only).

    Warning:
        In production, use environment variables.
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    FEATURE_FLAGS[flag] = enabled
