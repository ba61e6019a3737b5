"""
Unit tests for Pydantic schemas
"""

import pytest
from pydantic import ValidationError

from schemas.credential import CredentialCreate, CredentialResponse
from schemas.user import SetPinRequest, UserLogin, UserRegister
from schemas.validators import normalize_username, strip_invisible_edges


class TestUserSchemas:
    def test_register_valid(self):
        data = UserRegister(username="alice.smith", password="long-enough")
        assert data.username == "alice.smith"

    def test_register_strips_invisible_edges(self):
        data = UserRegister(username="\u200b alice \u200b", password="long-enough")
        assert data.username == "alice"

    @pytest.mark.parametrize("username", ["al", "has space", "semi;colon", "x" * 51])
    def test_register_rejects_bad_usernames(self, username):
        with pytest.raises(ValidationError):
            UserRegister(username=username, password="long-enough")

    def test_register_rejects_short_password(self):
        with pytest.raises(ValidationError):
            UserRegister(username="alice", password="1234567")

    def test_register_rejects_unpaired_surrogate(self):
        with pytest.raises(ValidationError):
            UserRegister(username="alice", password="long-enough\ud800")

    def test_login_has_no_password_policy(self):
        data = UserLogin(username=" alice ", password="x")
        assert data.username == "alice"
        assert data.password == "x"

    def test_set_pin_format_is_left_to_the_gate(self):
        # A malformed PIN gets the INVALID_PIN_FORMAT error, not a generic 422
        data = SetPinRequest(pin="12ab", password="secret")
        assert data.pin == "12ab"


class TestCredentialSchemas:
    def test_create_normalizes_text(self):
        data = CredentialCreate(
            account_name="  mail  ",
            password="  keep my spaces  ",
            service_url="   ",
            notes="<b>work</b> account",
        )
        assert data.account_name == "mail"
        assert data.password == "  keep my spaces  "
        assert data.service_url is None
        assert data.notes == "work account"

    def test_create_rejects_blank_account_name(self):
        with pytest.raises(ValidationError):
            CredentialCreate(account_name="   ", password="x")

    def test_create_rejects_empty_password(self):
        with pytest.raises(ValidationError):
            CredentialCreate(account_name="mail", password="")

    def test_response_has_no_secret_fields(self):
        fields = set(CredentialResponse.model_fields)
        assert "password" not in fields
        assert "encrypted_secret" not in fields


class TestValidators:
    def test_strip_invisible_edges(self):
        assert strip_invisible_edges("\ufeff\u200balice\u200d ") == "alice"
        assert strip_invisible_edges("a\u200bb") == "a\u200bb"

    def test_normalize_username_passes_through_non_strings(self):
        assert normalize_username(None) is None
        assert normalize_username(42) == 42

    def test_normalize_username_rejects_blank(self):
        with pytest.raises(ValueError):
            normalize_username("\u200b")
