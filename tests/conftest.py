import random

import pytest

from neon_spinner.models.entities import Session
from neon_spinner.services.persistence import LocalGateway
from neon_spinner.services.user_store import UserStore


class FakeHandle:
    def __init__(self, callback, delay_ms, repeating, due):
        self.callback = callback
        self.delay_ms = delay_ms
        self.repeating = repeating
        self.due = due
        self.cancelled = False


class FakeTimers:
    """Manual-clock stand-in for TimerRegistry."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    @property
    def pending(self):
        return len(self.handles)

    def schedule(self, fn, delay_ms):
        handle = FakeHandle(fn, delay_ms, False, self.now + delay_ms)
        self.handles.append(handle)
        return handle

    def schedule_repeating(self, fn, interval_ms):
        handle = FakeHandle(fn, interval_ms, True, self.now + interval_ms)
        self.handles.append(handle)
        return handle

    def cancel(self, handle):
        if handle is None:
            return
        handle.cancelled = True
        if handle in self.handles:
            self.handles.remove(handle)

    def cancel_all(self):
        for handle in list(self.handles):
            self.cancel(handle)

    def advance(self, ms):
        """Fire everything due within the next ms, in due order."""
        target = self.now + ms
        while True:
            due = [h for h in self.handles if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self.now = handle.due
            if handle.repeating:
                handle.due += handle.delay_ms
            else:
                self.handles.remove(handle)
            handle.callback()
        self.now = target


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def store():
    store = UserStore()
    store.register("ana", "1234")
    return store


@pytest.fixture
def gateway(store):
    return LocalGateway(store, "ana")
