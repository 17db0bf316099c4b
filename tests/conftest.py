from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from main import app
from services.step_engine.access import AccessGate, Role
from services.step_engine.catalog import get_catalog
from services.step_engine.models import ProgressRecord
from workbook.auth.jwt import create_access_token
from workbook.dependencies import (
    get_access_gate,
    get_clock,
    get_identity_provider,
    get_progress_repository,
    get_unlock_counter,
)
from workbook.services.identity import InMemoryIdentityProvider, UserProfile
from workbook.services.progress_store import InMemoryProgressRepository
from workbook.services.unlock_attempts import UnlockAttemptCounter

FIXED_NOW = datetime(2025, 11, 21, 12, 0, tzinfo=timezone.utc)
SPONSEE_ID = "sponsee-1"
SPONSOR_ID = "sponsor-1"


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, ttl):
        self.ops.append(("expire", key, ttl))

    async def execute(self):
        results = []
        for op in self.ops:
            if op[0] == "incr":
                self.redis.values[op[1]] = int(self.redis.values.get(op[1], 0)) + 1
                results.append(self.redis.values[op[1]])
            else:
                self.redis.ttls[op[1]] = op[2]
                results.append(True)
        return results


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the attempt counter."""
    def __init__(self):
        self.values = {}
        self.ttls = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def get(self, key):
        value = self.values.get(key)
        return str(value) if value is not None else None

    async def delete(self, key):
        self.values.pop(key, None)
        return 1


def make_record(step_number, assigned=None, completed=None, data=None, user_id=SPONSEE_ID):
    return ProgressRecord(
        id=ProgressRecord.make_id(user_id, step_number),
        user_id=user_id,
        step_number=step_number,
        assignment_date=assigned,
        completion_date=completed,
        data=data or {},
    )


def auth_headers(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id=user_id)}"}


@pytest.fixture
def catalog():
    return get_catalog()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def repo():
    return InMemoryProgressRepository()


@pytest.fixture
def identity():
    return InMemoryIdentityProvider({
        SPONSOR_ID: UserProfile(id=SPONSOR_ID, role=Role.SPONSOR),
    })


@pytest.fixture
def counter(fake_redis):
    async def _get_redis():
        return fake_redis
    return UnlockAttemptCounter(redis_getter=_get_redis, key_prefix="test", ttl_seconds=60)


@pytest.fixture
def client(repo, identity, counter):
    app.dependency_overrides[get_progress_repository] = lambda: repo
    app.dependency_overrides[get_identity_provider] = lambda: identity
    app.dependency_overrides[get_access_gate] = lambda: AccessGate()
    app.dependency_overrides[get_unlock_counter] = lambda: counter
    app.dependency_overrides[get_clock] = lambda: (lambda: FIXED_NOW)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sponsee_headers():
    return auth_headers(SPONSEE_ID)


@pytest.fixture
def sponsor_headers():
    return auth_headers(SPONSOR_ID)


@pytest.fixture(name="make_record")
def make_record_fixture():
    return make_record


@pytest.fixture
def now():
    return FIXED_NOW
