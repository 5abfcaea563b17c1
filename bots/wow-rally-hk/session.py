"""Character session helpers shared by the rally bot's states."""


async def logout(F, win):
    await F.sleep(0.5)
    await win.tap("enter")
    await F.sleep(0.2)
    await win.type("/logout")
    await win.tap("enter")
    await F.sleep(6)


async def switch_char(F, win, n, key):
    """Log out, move ``n`` slots with ``key`` on the character list, log in."""
    F.log(f"switch char {n} {key}")
    await logout(F, win)
    for _ in range(n):
        await win.tap(key)
    await win.tap("enter")
