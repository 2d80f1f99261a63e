import pytest

from config.session import SessionConfig
from persistence.storage import InMemoryBlobStorage
from registration.session_store import RegistrationSessionStore
from registration.timeout import SessionTimeoutManager

START_MS = 1_700_000_000_000


class ManualClock:
    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class FakeTimer:
    def __init__(self, due_ms, callback):
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Timers driven by a ManualClock; advance() fires whatever comes due."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.timers = []

    def call_later(self, delay_seconds, callback):
        timer = FakeTimer(self.clock.now_ms + int(delay_seconds * 1000), callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float):
        target = self.clock.now_ms + int(seconds * 1000)
        while True:
            due = [t for t in self.pending if t.due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due_ms)
            timer.cancelled = True
            self.clock.now_ms = max(self.clock.now_ms, timer.due_ms)
            timer.callback()
        self.clock.now_ms = target


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def config():
    return SessionConfig()


@pytest.fixture
def storage():
    return InMemoryBlobStorage()


@pytest.fixture
def make_store(storage, config, clock, scheduler):
    def _make(**overrides):
        kwargs = dict(
            storage=storage,
            config=config,
            clock=clock,
            timeout_manager=SessionTimeoutManager(config.idle_timeout_seconds, scheduler),
        )
        kwargs.update(overrides)
        return RegistrationSessionStore(**kwargs)

    return _make


@pytest.fixture
def store(make_store):
    return make_store()


@pytest.fixture
def personal_info():
    return {
        "firstName": "Ana",
        "lastName": "Pérez",
        "email": "ana@example.com",
        "phone": "+584121234567",
        "password": "s3cretpass",
        "confirmPassword": "s3cretpass",
    }


@pytest.fixture
def professional_info():
    return {
        "documentNumber": "V12345678",
        "university": "Universidad Central de Venezuela",
        "graduationYear": 2010,
        "medicalBoard": "Colegio de Médicos de Caracas",
        "bio": "Internist with fifteen years of hospital practice and a focus on diabetes care.",
    }
