"""finger: window-bound bot orchestration."""

__version__ = "0.3.0"
