import time


class RequestTiming:
    """
    Start instant of a single request, anchored to the monotonic clock.

    Created once at pipeline entry and handed to the chaos stages and the
    handlers, which only read it.
    """

    __slots__ = ("_start",)

    def __init__(self, start: float):
        self._start = start

    @classmethod
    def start(cls) -> "RequestTiming":
        return cls(time.perf_counter())

    def elapsed_ms(self) -> float:
        """Milliseconds since the request entered the pipeline."""
        return (time.perf_counter() - self._start) * 1000.0

    def __repr__(self):
        return f"RequestTiming(elapsed_ms={self.elapsed_ms():.3f})"
