"""Auto-clicker for "向僵尸开炮" (Fire the Zombies).

Cycles through a few button positions, clicking each one at most once per
its own cooldown.
"""

import time

window_pattern = "僵尸|zombie"
description = "Auto-clicker for Fire the Zombies"

# (x_ratio, y_ratio, cooldown_seconds)
POSITIONS = [
    (0.85, 0.75, 3),  # right1
    (0.50, 0.80, 5),  # start
    (0.50, 0.50, 3),  # done
    (0.30, 0.70, 3),  # tower
]

timers = [0.0] * len(POSITIONS)
current = 0


def _rearm():
    global current
    now = time.monotonic()
    for i in range(len(timers)):
        timers[i] = now
    current = 0


def start(w):
    _rearm()


async def tick():
    global current
    now = time.monotonic()
    x, y, cooldown = POSITIONS[current]
    if now >= timers[current]:
        await win.click(x, y)
        timers[current] = now + cooldown
    current = (current + 1) % len(POSITIONS)
    return 700


def get_status():
    return f"pos {current + 1}/{len(POSITIONS)}"


def reset():
    _rearm()
