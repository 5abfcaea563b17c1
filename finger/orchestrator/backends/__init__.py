"""Window backends.

``stub`` is importable everywhere; ``win32`` is imported on demand by the
registry because it loads user32 at import time.
"""

from .stub import DEFAULT_WINDOWS, StubBackend

__all__ = ["DEFAULT_WINDOWS", "StubBackend"]
