"""Auto-verification retry schedule."""


def auto_verify_delays(
    first_delay: int = 60,
    factor: float = 3.0,
    max_delay: int = 24 * 60 * 60,
    window_seconds: int = 30 * 24 * 60 * 60,
) -> list[int]:
    """Sleep before each attempt: exponential, capped, bounded by the window.

    With the defaults: 1m, 3m, 9m, 27m, 81m, ~4h, ~12h, then daily until
    30 days after the domain was added.
    """
    delays: list[int] = []
    total = 0
    delay = first_delay
    while total + delay <= window_seconds:
        delays.append(int(delay))
        total += delay
        delay = min(delay * factor, max_delay)
    return delays
