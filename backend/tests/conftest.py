"""
Shared fixtures for the RTI tracker tests.

Users are inserted straight into the mirror with a placeholder credential
hash so fixtures avoid bcrypt cost; test_users.py covers real registration.
"""
from datetime import datetime, timedelta, timezone

import pytest

from rti_tracker.models.domain import Role, User
from rti_tracker.services.gateways import InMemoryContentStore, InMemoryLedger
from rti_tracker.services.lifecycle import ComplaintResolutionProtocol, LifecycleEngine
from rti_tracker.services.mirror import InMemoryMirrorStore

SIGNING_KEY = "test-signing-key"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


def make_user(user_id, role, identity=None):
    return User(
        id=user_id,
        name=user_id.title(),
        external_identity_number=identity or f"ID-{user_id}",
        role=role,
        credential_hash="placeholder",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryMirrorStore()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def content_store():
    return InMemoryContentStore()


@pytest.fixture
def users(store):
    """client, second client, officer, second officer, admin."""
    created = {
        "client": make_user("client", Role.CLIENT),
        "other_client": make_user("other_client", Role.CLIENT),
        "officer": make_user("officer", Role.OFFICER),
        "other_officer": make_user("other_officer", Role.OFFICER),
        "admin": make_user("admin", Role.ADMIN),
    }
    for user in created.values():
        store.create_user(user)
    return created


@pytest.fixture
def engine(store, content_store, ledger, clock, users):
    return LifecycleEngine(
        store,
        content_store,
        ledger,
        signing_key=SIGNING_KEY,
        timeout=2.0,
        clock=clock,
    )


@pytest.fixture
def complaints(store, content_store, clock):
    return ComplaintResolutionProtocol(store, content_store, timeout=2.0, clock=clock)
