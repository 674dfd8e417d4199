"""Exponential backoff with jitter."""
import random


def exp_backoff(attempt: int, jitter: float, minimum: float, maximum: float,
                unit: float) -> float:
    """Compute how long to sleep before the next attempt.

        delay = (2**attempt + uniform(-jitter, jitter)) * unit
        return min(max(delay, minimum), maximum)

    ``maximum == 0`` disables the upper bound. The result is never below
    ``minimum``, so a large negative jitter sample cannot produce a negative
    sleep.

    Example: exp_backoff(1, 0.1, 0.001, 30, 0.001) is the delay after the
    second failure, +/- 0.1 units of jitter, at least 1ms, at most 30s, with
    1ms units.

    Args:
        attempt: Zero-based number of the attempt that just failed
        jitter: Maximum deviation, in multiples of unit
        minimum: Lower bound in seconds
        maximum: Upper bound in seconds, 0 for none
        unit: Seconds per backoff step

    Returns:
        Delay in seconds
    """
    deviation = random.uniform(-jitter, jitter)
    delay = (2 ** attempt + deviation) * unit
    if delay < minimum:
        return minimum
    if maximum and delay > maximum:
        return maximum
    return delay
