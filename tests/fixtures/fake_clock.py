"""
Controllable wall clock for cache expiry tests.
"""


class FakeClock:
    """Callable returning a settable time in seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now
