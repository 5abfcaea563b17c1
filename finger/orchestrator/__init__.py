from .errors import BotError, CallbackError, HandleMisuseWarning, LoadError, PatternError
from .instances import BotInstance, InstanceManager
from .interfaces import BotCallbacks, BotDefinition, InstanceState, WindowBackend, WindowInfo
from .loader import discover, find_bot_dirs, load_definition
from .matcher import WindowFound, WindowLost, WindowMatcher, compile_pattern
from .registry import Registry, build_default_registry, resolve_backend_name
from .runner import BotSummary, Engine, InstanceSummary, ThreadSafeControl
from .scheduler import Scheduler

__all__ = [
    "BotCallbacks",
    "BotDefinition",
    "BotError",
    "BotInstance",
    "BotSummary",
    "CallbackError",
    "Engine",
    "HandleMisuseWarning",
    "InstanceManager",
    "InstanceState",
    "InstanceSummary",
    "LoadError",
    "PatternError",
    "Registry",
    "Scheduler",
    "ThreadSafeControl",
    "WindowBackend",
    "WindowFound",
    "WindowInfo",
    "WindowLost",
    "WindowMatcher",
    "build_default_registry",
    "compile_pattern",
    "discover",
    "find_bot_dirs",
    "load_definition",
    "resolve_backend_name",
]
