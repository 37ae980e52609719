from __future__ import annotations

from samvaad.errors import IdentityProviderError

from tests.helpers.fakes import store_error


async def test_reap_deletes_profile_then_identity(reaper, identities, store, make_profile):
    identity = identities.add_identity()
    store.put(make_profile(identity, sent_ago_s=900))

    assert await reaper.reap(identity.id) is True
    assert identity.id not in store.rows
    assert identity.id not in identities.identities


async def test_reap_refuses_confirmed_account(reaper, identities, store, make_profile):
    identity = identities.add_identity()
    store.put(make_profile(identity, confirmed=True))

    assert await reaper.reap(identity.id) is False
    assert identity.id in store.rows
    assert identities.count("delete_identity") == 0


async def test_reap_without_profile_still_removes_identity(reaper, identities):
    identity = identities.add_identity()

    assert await reaper.reap(identity.id) is True
    assert identity.id not in identities.identities


async def test_partial_reap_reports_failure(reaper, identities, store, make_profile):
    identity = identities.add_identity()
    store.put(make_profile(identity))
    identities.fail_on("delete_identity", IdentityProviderError("forbidden"))

    assert await reaper.reap(identity.id) is False
    assert identity.id not in store.rows
    assert identity.id in identities.identities


async def test_profile_delete_failure_keeps_identity(reaper, identities, store, make_profile):
    identity = identities.add_identity()
    store.put(make_profile(identity))
    store.fail_on("delete", store_error())

    assert await reaper.reap(identity.id) is False
    assert identities.count("delete_identity") == 0
