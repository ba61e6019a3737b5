"""
Unit tests for database models
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from db.database import Base, enable_sqlite_foreign_keys
from models.activity_log import ActivityLog
from models.credential import Credential
from models.sharing import Sharing, as_utc
from models.user import Role, User


@pytest.fixture(scope="function")
def db_session(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test_models.db'}")
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()


def _user(session, username="alice", **kwargs):
    user = User(username=username, password_hash="x", **kwargs)
    session.add(user)
    session.commit()
    return user


def _credential(session, owner, account_name="mail"):
    credential = Credential(user_id=owner.id, account_name=account_name, encrypted_secret="blob")
    session.add(credential)
    session.commit()
    return credential


def _sharing(session, credential, recipient, expires_at=None, token="token-1"):
    sharing = Sharing(
        credential_id=credential.id,
        owner_id=credential.user_id,
        recipient_id=recipient.id,
        access_token=token,
        expires_at=expires_at or datetime.now(timezone.utc) + timedelta(days=1),
    )
    session.add(sharing)
    session.commit()
    return sharing


class TestUserModel:
    def test_defaults(self, db_session):
        user = _user(db_session)

        assert user.id is not None
        assert user.role == Role.USER
        assert user.roles == ["USER"]
        assert user.has_pin is False
        assert user.created_at is not None
        assert user.last_login is None

    def test_admin_roles(self, db_session):
        user = _user(db_session, role=Role.ADMIN)
        assert user.roles == ["ADMIN"]

    def test_has_pin(self, db_session):
        user = _user(db_session, pin_hash="a" * 64)
        assert user.has_pin is True

    def test_unique_username(self, db_session):
        _user(db_session)
        db_session.add(User(username="alice", password_hash="y"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_repr_has_no_secrets(self, db_session):
        user = _user(db_session, pin_hash="f" * 64)
        assert "alice" in repr(user)
        assert "f" * 64 not in repr(user)


class TestCredentialModel:
    def test_owner_relationship(self, db_session):
        alice = _user(db_session)
        credential = _credential(db_session, alice)

        assert credential.owner.username == "alice"
        assert [c.id for c in alice.credentials] == [credential.id]

    def test_credential_requires_existing_owner(self, db_session):
        db_session.add(Credential(user_id=12345, account_name="x", encrypted_secret="blob"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_credential_with_grants_cannot_be_deleted_directly(self, db_session):
        alice = _user(db_session)
        bob = _user(db_session, "bob")
        credential = _credential(db_session, alice)
        _sharing(db_session, credential, bob)

        db_session.delete(credential)
        with pytest.raises(IntegrityError):
            db_session.commit()


class TestSharingModel:
    def test_relationships(self, db_session):
        alice = _user(db_session)
        bob = _user(db_session, "bob")
        credential = _credential(db_session, alice)
        sharing = _sharing(db_session, credential, bob)

        assert sharing.owner.username == "alice"
        assert sharing.recipient.username == "bob"
        assert sharing.credential.account_name == "mail"
        assert sharing.accepted is False
        assert [s.id for s in credential.sharings] == [sharing.id]

    def test_access_token_unique(self, db_session):
        alice = _user(db_session)
        bob = _user(db_session, "bob")
        credential = _credential(db_session, alice)
        _sharing(db_session, credential, bob, token="same")

        db_session.add(
            Sharing(
                credential_id=credential.id,
                owner_id=alice.id,
                recipient_id=bob.id,
                access_token="same",
                expires_at=datetime.now(timezone.utc),
            )
        )
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_is_active(self, db_session):
        alice = _user(db_session)
        bob = _user(db_session, "bob")
        credential = _credential(db_session, alice)
        expires = datetime.now(timezone.utc) + timedelta(hours=1)
        sharing = _sharing(db_session, credential, bob, expires_at=expires)
        db_session.expire(sharing)

        assert sharing.is_active(expires - timedelta(seconds=1)) is True
        assert sharing.is_active(expires) is False
        assert sharing.is_active(expires + timedelta(seconds=1)) is False

    def test_as_utc(self):
        naive = datetime(2030, 1, 1, 12, 0)
        aware = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

        assert as_utc(None) is None
        assert as_utc(naive) == aware
        assert as_utc(aware) is aware


class TestActivityLogModel:
    def test_log_survives_user_deletion(self, db_session):
        alice = _user(db_session)
        entry = ActivityLog(user_id=alice.id, action=ActivityLog.ACTION_LOGIN)
        db_session.add(entry)
        db_session.commit()

        db_session.delete(alice)
        db_session.commit()
        db_session.refresh(entry)

        assert entry.user_id is None
        assert entry.success is True
