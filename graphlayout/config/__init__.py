"""Engine configuration (environment-driven)."""

from .settings import FEATURE_FLAGS, LayoutSettings, is_enabled, load_settings, set_flag

__all__ = ["FEATURE_FLAGS", "LayoutSettings", "is_enabled", "load_settings", "set_flag"]
