"""Rally + HK buff coordination for WoW Classic Era.

Waits for the overlay to show ``rally``, pops the buff, then walks the
character list waiting for the ``hkpre``/``hk`` hints.
"""

import time

from .session import logout, switch_char

window_pattern = "World of Warcraft|wow|魔兽世界"
description = "Rally+HK buff coordination"

WAITING_RALLY = 0
WAITING_HK = 1
RELOGIN_AFTER_S = 20 * 60

state = WAITING_RALLY
count = 0  # character position
last_login = 0.0  # 0 means re-login on the first tick


async def _switch(n, key):
    global last_login
    await switch_char(F, win, n, key)
    last_login = time.time()


async def _try_final():
    global count, state
    if await win.decodev2() == "hk":
        F.log("got hk")
        count += 1
        state = WAITING_RALLY
        await _switch(1, "up")
    else:
        await _switch(count + 1, "down")


def start(w):
    global last_login
    last_login = 0.0


async def tick():
    global state, last_login
    hint = await win.decodev2()
    if state == WAITING_RALLY and hint == "rally":
        F.log("got rally signal")
        for _ in range(3):
            await win.tap("=")
            await F.sleep(1)
        await F.sleep(29)
        state = WAITING_HK
        await _try_final()
    elif state == WAITING_HK and hint == "hkpre":
        F.log("zandalar yelled")
        await _switch(count + 1, "up")
        await F.sleep(45)
        await _try_final()

    # Re-login every 20 minutes to avoid the AFK kick.
    now = time.time()
    if last_login == 0 or now - last_login > RELOGIN_AFTER_S:
        await logout(F, win)
        await win.tap("enter")
        last_login = time.time()
        F.log("auto re-login")


def get_status():
    if state == WAITING_RALLY:
        return "waiting rally"
    if state == WAITING_HK:
        return "waiting hk yell"
    return "unknown"


def reset():
    global state, count, last_login
    state = WAITING_RALLY
    count = 0
    last_login = 0.0
