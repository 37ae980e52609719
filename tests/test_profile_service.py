from __future__ import annotations

from samvaad.models.enums import UserRole
from samvaad.models.profile import ProfileUpdate

from tests.helpers.fakes import store_error


async def test_update_profile_writes_set_fields(profile_service, identities, store, session, make_profile):
    identity = identities.add_identity()
    session.set_authenticated(identity, store.put(make_profile(identity)))

    result = await profile_service.update_profile(identity.id, ProfileUpdate(name="Asha Rao", age=15))

    assert result.success
    assert store.rows[identity.id].name == "Asha Rao"
    assert store.rows[identity.id].age == 15
    assert session.snapshot.profile.name == "Asha Rao"


async def test_update_profile_error_statuses(profile_service, identities, store, make_profile):
    assert (await profile_service.update_profile("u1", ProfileUpdate())).status_code == 400
    assert (await profile_service.update_profile("u1", ProfileUpdate(age=3))).status_code == 404

    identity = identities.add_identity()
    store.put(make_profile(identity))
    store.fail_on("update", store_error())
    assert (await profile_service.update_profile(identity.id, ProfileUpdate(age=3))).status_code == 503


async def test_connect_parent_child(profile_service, identities, store, make_profile):
    parent = identities.add_identity(email="mother@example.com")
    child = identities.add_identity(email="child@example.com")
    store.put(make_profile(parent, role=UserRole.PARENT, roll_number="111111"))
    store.put(make_profile(child, role=UserRole.DEAF, roll_number="222222"))

    result = await profile_service.connect_parent_child(parent.id, "222222")

    assert result.success
    assert result.data.child_roll_number == "222222"
    assert store.links == [(parent.id, child.id)]


async def test_connect_parent_child_rejections(profile_service, identities, store, make_profile):
    teacher = identities.add_identity(email="teacher@example.com")
    parent = identities.add_identity(email="father@example.com")
    store.put(make_profile(teacher, role=UserRole.TEACHER, roll_number="333333"))
    store.put(make_profile(parent, role=UserRole.PARENT, roll_number="444444"))

    assert (await profile_service.connect_parent_child(parent.id, "12")).status_code == 400
    assert (await profile_service.connect_parent_child("ghost", "333333")).status_code == 404
    assert (await profile_service.connect_parent_child(teacher.id, "444444")).status_code == 403
    assert (await profile_service.connect_parent_child(parent.id, "333333")).status_code == 404
    assert store.links == []


async def test_get_user_by_roll_number(profile_service, identities, store, make_profile):
    identity = identities.add_identity()
    store.put(make_profile(identity, roll_number="777777"))

    assert (await profile_service.get_user_by_roll_number("777777")).data.id == identity.id
    assert (await profile_service.get_user_by_roll_number("777778")).status_code == 404
    assert (await profile_service.get_user_by_roll_number("abc")).status_code == 400
