"""
Shared fixtures: a scripted random source and a recording sleep so the mock
API behaves deterministically under test.
"""
import pytest

from mock_api import create_app


class ScriptedRandom:
    """Stands in for random.Random.

    ``random()`` pops from ``values`` (falling back to ``default``);
    ``uniform(a, b)`` returns ``a + fraction * (b - a)`` and records the range.
    """

    def __init__(self, values=(), default=0.5, fraction=0.0):
        self.values = list(values)
        self.default = default
        self.fraction = fraction
        self.ranges = []

    def random(self):
        return self.values.pop(0) if self.values else self.default

    def uniform(self, a, b):
        self.ranges.append((a, b))
        return a + self.fraction * (b - a)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def scripted_rng():
    return ScriptedRandom()


@pytest.fixture
def app(scripted_rng, fake_sleep):
    test_app = create_app(rng=scripted_rng, sleep=fake_sleep)
    test_app.config["TESTING"] = True
    return test_app


@pytest.fixture
def client(app):
    return app.test_client()
