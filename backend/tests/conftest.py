"""
Shared fixtures: in-memory Motor database and a seeded hierarchy.

    super admin "root", regular admin "ops"
    managerA -> staffS, staffT
    managerB -> staffU
    call-center agent "agentC" (no manager)

Run: cd backend && pytest tests -v
"""

import asyncio
import os

import mongomock_motor
import pytest

os.environ.setdefault("DB_NAME", "leadflow_test")

import config  # noqa: E402

# Every service does `from config import db`: swap before they are imported.
config.client = mongomock_motor.AsyncMongoMockClient()
config.db = config.client[config.DB_NAME]

from models.user import RequesterContext  # noqa: E402

COLLECTIONS = [
    "users", "customers", "leads", "tasks", "activities",
    "targets", "notifications", "leaves", "sessions",
]


def _db_op(coro):
    """Run async DB operation in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _user(uid, privilege, second="regular", manager=None, active=True):
    return {
        "id": uid,
        "username": uid.lower(),
        "name": uid,
        "phone": "9000000000",
        "privilege": privilege,
        "second_privilege": second,
        "manager": manager,
        "is_active": active,
        "fcm_token": None,
        "password": config.hash_password("password123"),
        "created_at": config.now_iso(),
    }


SEED_USERS = [
    _user("root", "admin", "super"),
    _user("ops", "admin"),
    _user("managerA", "manager"),
    _user("managerB", "manager"),
    _user("staffS", "staff", manager="managerA"),
    _user("staffT", "staff", manager="managerA"),
    _user("staffU", "staff", manager="managerB"),
    _user("agentC", "staff", "call-center"),
]


@pytest.fixture(autouse=True)
def clean_db():
    async def _wipe():
        for name in COLLECTIONS:
            await config.db[name].delete_many({})
        await config.db.users.insert_many([dict(u) for u in SEED_USERS])

    _db_op(_wipe())
    yield


def ctx_for(user_id: str) -> RequesterContext:
    user = next(u for u in SEED_USERS if u["id"] == user_id)
    return RequesterContext.from_user(user)


@pytest.fixture
def ctx():
    """ctx("staffS") -> RequesterContext of a seeded user."""
    return ctx_for
