import asyncio
import random


def compute_backoff_delay(
    attempt: int,
    *,
    base: float = 0.2,
    factor: float = 1.6,
    maximum: float = 5.0,
    jitter: float = 0.0,
) -> float:
    """
    Compute the exponential backoff delay before retrying a submission.

    Parameters
    ----------
    attempt : int
        1-based number of the attempt that just failed.
    base : float
        Delay after the first failed attempt, in seconds.
    factor : float
        Multiplier applied per additional attempt.
    maximum : float
        Upper bound of the returned delay, in seconds.
    jitter : float
        Fraction of random extra delay, ``0`` keeps the delay deterministic.

    Returns
    -------
    float
        Delay in seconds, never above ``maximum``.
    """
    if attempt <= 0:
        delay = base
    else:
        delay = base * factor ** (attempt - 1)
    if jitter > 0:
        delay *= 1 + random.uniform(0, jitter)
    return min(delay, maximum)


async def wait(seconds: float) -> None:
    if seconds <= 0:
        return
    await asyncio.sleep(delay=seconds)
