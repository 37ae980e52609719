from __future__ import annotations

import random
from datetime import timedelta

import pytest

from samvaad.auth import SessionManager
from samvaad.database import DatabaseManager
from samvaad.logger import StructuredLogger
from samvaad.models.enums import UserRole
from samvaad.models.profile import Profile
from samvaad.schema import initialize_schema
from samvaad.services.auth_service import AuthService
from samvaad.services.confirmation_tracker import ConfirmationTracker
from samvaad.services.expiry_reaper import ExpiryReaper
from samvaad.services.manual_confirmation import ManualConfirmationService
from samvaad.services.profile_service import ProfileService
from samvaad.services.reconciliation import ProfileReconciliationService
from samvaad.services.roll_number import RollNumberAllocator
from samvaad.services.session_state import SessionStateService
from samvaad.utils.machine_cipher import MachineBoundCipher
from samvaad.utils.timestamps import utc_now

from tests.helpers.fakes import (
    FakeClock,
    FakeIdentityProvider,
    FakePendingSignupCache,
    FakeProfileStore,
    FakeTokenCache,
)


@pytest.fixture(scope="session")
def logger(tmp_path_factory):
    log_file = tmp_path_factory.mktemp("logs") / "samvaad-test.log"
    return StructuredLogger(name="samvaad.tests", log_file=str(log_file))


@pytest.fixture
def identities():
    return FakeIdentityProvider()


@pytest.fixture
def store():
    return FakeProfileStore()


@pytest.fixture
def pending():
    return FakePendingSignupCache()


@pytest.fixture
def token_cache():
    return FakeTokenCache()


@pytest.fixture
def session():
    return SessionManager()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def allocator(store, logger):
    return RollNumberAllocator(store=store, logger=logger, rng=random.Random(7))


@pytest.fixture
def reconciliation(store, pending, allocator, logger):
    return ProfileReconciliationService(
        store=store, pending_cache=pending, allocator=allocator, logger=logger,
    )


@pytest.fixture
def reaper(store, identities, logger):
    return ExpiryReaper(store=store, identities=identities, logger=logger)


@pytest.fixture
def tracker(store, identities, reaper, logger):
    return ConfirmationTracker(
        store=store, identities=identities, reaper=reaper, logger=logger,
        window_s=600, grace_s=300,
    )


@pytest.fixture
def manual(store, identities, reconciliation, logger):
    return ManualConfirmationService(
        store=store, identities=identities, reconciliation=reconciliation, logger=logger,
    )


@pytest.fixture
def auth_service(identities, store, pending, allocator, reconciliation, session, token_cache, logger):
    return AuthService(
        identities=identities,
        store=store,
        pending_cache=pending,
        allocator=allocator,
        reconciliation=reconciliation,
        session=session,
        token_cache=token_cache,
        logger=logger,
    )


@pytest.fixture
def profile_service(store, session, logger):
    return ProfileService(store=store, session=session, logger=logger)


@pytest.fixture
def make_state_service(
    identities, reconciliation, tracker, manual, auth_service, profile_service, session, logger, clock,
):
    def _make(**overrides):
        kwargs = dict(
            identities=identities,
            reconciliation=reconciliation,
            tracker=tracker,
            manual_confirmation=manual,
            auth_service=auth_service,
            profile_service=profile_service,
            session=session,
            logger=logger,
            window_s=600,
            poll_interval_s=15.0,
            tick_interval_s=1.0,
            manual_debounce_s=2.0,
            clock=clock.time,
        )
        kwargs.update(overrides)
        return SessionStateService(**kwargs)

    return _make


@pytest.fixture
def make_profile():
    def _make(identity, *, confirmed=False, sent_ago_s=0.0, roll_number="482913", **fields):
        now = utc_now()
        defaults = dict(
            id=identity.id,
            email=identity.email,
            name=identity.display_name,
            role=UserRole.DEAF,
            roll_number=roll_number,
            email_confirmed=confirmed,
            confirmation_sent_at=now - timedelta(seconds=sent_ago_s),
        )
        defaults.update(fields)
        return Profile(**defaults)

    return _make


@pytest.fixture
def local_db(tmp_path, logger):
    conn = DatabaseManager._connect_sqlite(tmp_path / "local.db", logger)
    initialize_schema(conn, logger)
    db = DatabaseManager(sqlite_conn=conn, logger=logger)
    yield db
    db.close()


@pytest.fixture
def cipher(tmp_path, logger):
    return MachineBoundCipher(logger=logger, salt_path=tmp_path / "salt.bin", iterations=1_000)
