from __future__ import annotations

from samvaad.models.auth_models import PendingSignup
from samvaad.models.enums import DeafUserProficiency, UserRole

from tests.helpers.fakes import FakeProfileStore, cache_error, store_error


async def test_existing_profile_is_returned_untouched(reconciliation, identities, store, make_profile):
    identity = identities.add_identity()
    existing = store.put(make_profile(identity))

    assert await reconciliation.ensure_profile(identity) == existing
    assert store.count("upsert") == 0


async def test_missing_profile_is_synthesized_from_metadata(reconciliation, identities, store):
    identity = identities.add_identity(name="Ravi", role="teacher", roll_number="654321")

    profile = await reconciliation.ensure_profile(identity)

    assert profile is not None
    assert store.rows[identity.id] == profile
    assert profile.name == "Ravi"
    assert profile.role is UserRole.TEACHER
    assert profile.roll_number == "654321"
    assert profile.email_confirmed is False
    assert profile.confirmation_sent_at is not None


async def test_integer_metadata_roll_number_is_kept(reconciliation, identities):
    identity = identities.add_identity(rollNumber=654321)

    profile = await reconciliation.ensure_profile(identity)

    assert profile.roll_number == "654321"


async def test_taken_metadata_roll_number_is_replaced(reconciliation, identities, store):
    store.reserved_roll_numbers.add("654321")
    identity = identities.add_identity(roll_number="654321")

    profile = await reconciliation.ensure_profile(identity)

    assert profile.roll_number != "654321"
    assert len(profile.roll_number) == 6


async def test_unknown_role_falls_back_to_default(reconciliation, identities):
    identity = identities.add_identity(role="admin")

    profile = await reconciliation.ensure_profile(identity)

    assert profile.role is UserRole.DEAF
    assert profile.name == "asha"


async def test_pending_payload_wins_and_is_discarded(reconciliation, identities, pending):
    identity = identities.add_identity(name="metadata name", role="parent")
    pending.entries[identity.id] = PendingSignup(
        identity_id=identity.id,
        email=identity.email,
        name="Asha Rao",
        role=UserRole.DEAF,
        age=14,
        proficiency=DeafUserProficiency.KNOWS_HAND_SIGNS,
    )

    profile = await reconciliation.ensure_profile(identity)

    assert profile.name == "Asha Rao"
    assert profile.role is UserRole.DEAF
    assert profile.age == 14
    assert profile.proficiency is DeafUserProficiency.KNOWS_HAND_SIGNS
    assert identity.id not in pending.entries


async def test_unreadable_pending_cache_falls_back_to_metadata(reconciliation, identities, pending):
    identity = identities.add_identity(name="Ravi")
    pending.fail_on("get", cache_error())

    profile = await reconciliation.ensure_profile(identity)

    assert profile is not None
    assert profile.name == "Ravi"


async def test_repeated_runs_are_idempotent(reconciliation, identities, store):
    identity = identities.add_identity()

    first = await reconciliation.ensure_profile(identity)
    second = await reconciliation.ensure_profile(identity)

    assert first == second
    assert store.count("upsert") == 1


async def test_store_failure_yields_none(reconciliation, identities, store):
    identity = identities.add_identity()
    store.fail_on("get_by_id", store_error())

    assert await reconciliation.ensure_profile(identity) is None


async def test_upsert_conflict_recovers_concurrent_row(identities, pending, logger):
    from samvaad.services.reconciliation import ProfileReconciliationService
    from samvaad.services.roll_number import RollNumberAllocator

    class RacingStore(FakeProfileStore):
        async def upsert(self, profile):
            self.rows[profile.id] = profile
            raise store_error("duplicate key value violates unique constraint")

    store = RacingStore()
    service = ProfileReconciliationService(
        store=store,
        pending_cache=pending,
        allocator=RollNumberAllocator(store=store, logger=logger),
        logger=logger,
    )
    identity = identities.add_identity()

    profile = await service.ensure_profile(identity)

    assert profile is not None
    assert profile.id == identity.id


async def test_build_profile_confirmed_sets_confirmation_time(reconciliation, identities):
    identity = identities.add_identity()

    profile = await reconciliation.build_profile(identity, None, confirmed=True)

    assert profile.email_confirmed is True
    assert profile.email_confirmed_at == profile.confirmation_sent_at
