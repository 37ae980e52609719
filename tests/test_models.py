from __future__ import annotations

from pydantic import SecretStr

from samvaad.models.auth_models import SignupData
from samvaad.models.enums import DeafUserIssue, UserRole
from samvaad.models.identity import Identity
from samvaad.models.profile import Profile, ProfileUpdate, is_valid_roll_number


def test_roll_number_validation():
    assert is_valid_roll_number("100000")
    assert is_valid_roll_number("999999")
    assert not is_valid_roll_number("099999")
    assert not is_valid_roll_number("1000000")
    assert not is_valid_roll_number("12a456")
    assert not is_valid_roll_number(123456)


def test_profile_tolerates_bad_timestamps_and_int_roll_numbers():
    profile = Profile(
        id="u1",
        email="a@b.co",
        name="Asha",
        roll_number=482913,
        confirmation_sent_at="not-a-date",
        unknown_column="ignored",
    )
    assert profile.roll_number == "482913"
    assert profile.confirmation_sent_at is None
    assert profile.role is UserRole.DEAF


def test_profile_row_omits_none_and_is_json_safe():
    profile = Profile(id="u1", email="a@b.co", name="Asha", roll_number="482913",
                      issues=[DeafUserIssue.PARTIAL])
    row = profile.to_row()
    assert row["issues"] == ["partial"]
    assert "age" not in row
    assert row["email_confirmed"] is False


def test_profile_update_only_dumps_set_fields():
    assert ProfileUpdate(name="Ravi").to_fields() == {"name": "Ravi"}
    assert ProfileUpdate(age=None).to_fields() == {"age": None}


def test_signup_payload_never_contains_password():
    data = SignupData(
        email="asha@example.com",
        password=SecretStr("hunter22"),
        name="Asha",
        role=UserRole.PARENT,
        child_roll_number="482913",
    )
    pending = data.to_pending("u1")
    assert "password" not in pending.model_dump()
    assert "hunter22" not in pending.model_dump_json()
    assert pending.role_specific_fields() == {"child_roll_number": "482913"}


def test_identity_display_name_falls_back_to_email():
    assert Identity(id="u1", email="asha@example.com").display_name == "asha"
    assert Identity(id="u1", email="x@y.z", user_metadata={"name": " Asha "}).display_name == "Asha"
