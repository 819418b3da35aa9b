import asyncio
import itertools
import json

import pytest

from cpsim.charge_point import ChargePoint
from cpsim.scheduler import Timer
from cpsim.store import MemoryStore
from cpsim.transport import Closed, Message, Opened, ReadyState


class FakeTransport:
    """Records outbound frames instead of writing to a socket."""

    def __init__(self, url, cpid, events):
        self.url = f"{url}{cpid}"
        self.events = events
        self.ready_state = ReadyState.CONNECTING
        self.sent = []
        self.close_code = None

    @property
    def is_open(self):
        return self.ready_state == ReadyState.OPEN

    def start(self):
        pass

    def send(self, frame):
        if not self.is_open:
            return False
        self.sent.append(frame)
        return True

    def close(self, code=3001):
        self.close_code = code
        self.ready_state = ReadyState.CLOSING

    # -------- helpers --------
    def frames(self):
        return [json.loads(f) for f in self.sent]

    def calls(self, action=None):
        return [f for f in self.frames() if f[0] == 2 and (action is None or f[2] == action)]

    def last_call(self, action=None):
        calls = self.calls(action)
        assert calls, f"no {action or ''} CALL sent"
        return calls[-1]


class ManualScheduler:
    """Scheduler driven by advance() instead of the wall clock."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def after(self, delay, callback):
        timer = Timer(callback)
        timer.due = self.now + delay
        self.timers.append(timer)
        return timer

    def every(self, period, callback):
        timer = Timer(callback, period)
        timer.due = self.now + period
        self.timers.append(timer)
        return timer

    def active(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self.active() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            if timer.period:
                timer.due += timer.period
            else:
                self.timers.remove(timer)
            timer.callback()
        self.now = target


def receive(cp, frame):
    cp.handle_event(Message(cp.transport, frame))


def respond(cp, action, payload):
    """Answer the last CALL of ``action`` with a CALLRESULT."""
    call = cp.transport.last_call(action)
    cp.handle_event(Message(cp.transport, json.dumps([3, call[1], payload])))


def request(cp, unique_id, action, payload=None):
    """Deliver a server initiated CALL."""
    frame = [2, unique_id, action] if payload is None else [2, unique_id, action, payload]
    cp.handle_event(Message(cp.transport, json.dumps(frame)))


def close(cp, code):
    cp.handle_event(Closed(cp.transport, code))


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def cp(scheduler):
    ids = (f"msg{n}" for n in itertools.count(1))
    return ChargePoint(
        "CP1",
        session=MemoryStore(),
        durable=MemoryStore(),
        scheduler=scheduler,
        events=asyncio.Queue(),
        transport_factory=FakeTransport,
        id_generator=lambda: next(ids),
        connectors=2,
    )


@pytest.fixture
def statuses(cp):
    seen = []
    cp.set_status_change_callback(lambda status, detail: seen.append((status, detail)))
    return seen


@pytest.fixture
def connected(cp):
    """Engine whose BootNotification was accepted, outbound log cleared."""
    cp.connect("ws://csms.test/ocpp/", "CP1")
    cp.transport.ready_state = ReadyState.OPEN
    cp.handle_event(Opened(cp.transport))
    respond(cp, "BootNotification", {"status": "Accepted", "interval": 30, "currentTime": "2024-01-01T00:00:00Z"})
    cp.transport.sent.clear()
    return cp
