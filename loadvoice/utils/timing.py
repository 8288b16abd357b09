import time

from ..exceptions import PipelineTimeout


class Deadline:
    """Wall-clock budget for one pipeline run."""

    def __init__(self, seconds, call_id=None, clock=time.monotonic):
        self.seconds = float(seconds)
        self.call_id = call_id
        self._clock = clock
        self._expires_at = clock() + self.seconds

    def remaining(self):
        return max(0.0, self._expires_at - self._clock())

    def expired(self):
        return self._clock() >= self._expires_at

    def check(self, stage=None):
        if self.expired():
            raise PipelineTimeout(self.call_id, self.seconds, stage)

    def timeout_for(self, cap):
        """Per-request timeout: the cap, shortened to what is left of the run."""
        self.check()
        return max(1.0, min(float(cap), self.remaining()))
