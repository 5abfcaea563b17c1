from __future__ import annotations

import logging
from typing import Any, Callable, Optional


logger = logging.getLogger("finger.hotkeys")


def start_toggle_hotkey(hotkey: str, on_press: Callable[[], Any]) -> Optional[Any]:
    """Listen globally for ``hotkey`` (pynput syntax, e.g. ``<ctrl>+<shift>+k``).

    The CLI binds it to pause/resume: the first press stops every bot, the
    next one brings the enabled bots back. Returns the running listener, or
    None when no keyboard hook is available (headless sessions, missing
    permissions). The listener thread is a daemon; call ``.stop()`` on it to
    release the hook.
    """

    try:
        from pynput import keyboard  # type: ignore

        def _fire() -> None:
            logger.info("hotkey %s pressed", hotkey)
            try:
                on_press()
            except Exception:
                logger.exception("hotkey handler failed")

        listener = keyboard.GlobalHotKeys({hotkey: _fire})
        listener.daemon = True
        listener.start()
    except Exception as exc:
        logger.warning("pause hotkey not available (%s)", exc)
        return None
    logger.info("press %s to pause or resume", hotkey)
    return listener
