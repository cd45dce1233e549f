import random
import secrets
from typing import Callable

RandomFactory = Callable[[], random.Random]


def new_request_rng() -> random.Random:
    """
    Returns a random generator scoped to a single request.

    Each request gets its own generator seeded from the OS entropy pool, so
    concurrent requests never contend on a shared generator and the
    failure, delay and corruption rolls stay independent of other requests.
    """
    return random.Random(secrets.randbits(64))
