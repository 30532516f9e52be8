import threading
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.errors import (
    AppError,
    CodeMismatchError,
    DeliveryError,
    StoreError,
    TokenError,
    ValidationError,
    VerificationExpiredError,
)
from app.models import AuditLog, User
from app.services import verification
from app.services.auth import verify_password
from app.services.verification import VerificationService, VerificationState


@pytest.fixture
def service(db, store, sessions, mailer):
    return VerificationService(db, store, sessions, mailer)


@pytest.fixture
def fixed_code(monkeypatch):
    monkeypatch.setattr(verification, "generate_verification_code", lambda: "7F3A9B")
    return "7F3A9B"


def _created_at(store, token):
    return store.get(token).created_at


class TestRegister:
    def test_stages_registration_and_mails_code(self, service, store, mailer, db):
        token = service.register("alice", "alice@x.com", "Secret1")
        pending = store.get(token)
        assert pending.username == "alice"
        assert pending.email == "alice@x.com"
        assert verify_password("Secret1", pending.password_hash)
        assert len(pending.verification_code) == 6
        assert pending.verification_code == pending.verification_code.upper()
        assert mailer.sent[-1]["to"] == "alice@x.com"
        assert mailer.last_code() == pending.verification_code
        # Nothing is persisted until the code is confirmed
        assert db.query(User).count() == 0

    def test_tokens_are_unique_per_registration(self, service):
        t1 = service.register("alice", "alice@x.com", "Secret1")
        t2 = service.register("alice2", "alice2@x.com", "Secret1")
        assert t1 != t2
        assert len(t1) == 40

    @pytest.mark.parametrize("username,email", [("bob", "new@x.com"), ("newbie", "bob@x.com")])
    def test_existing_username_or_email_rejected(self, service, make_user, store, username, email):
        make_user()
        with pytest.raises(ValidationError) as exc:
            service.register(username, email, "Secret1")
        assert exc.value.status_code == 409
        assert len(store) == 0

    def test_delivery_failure_unstages(self, service, store, mailer):
        mailer.fail = True
        with pytest.raises(DeliveryError):
            service.register("alice", "alice@x.com", "Secret1")
        assert len(store) == 0


class TestVerify:
    def test_right_code_within_ttl_commits(self, service, store, db, fixed_code):
        token = service.register("alice", "alice@x.com", "Secret1")
        now = _created_at(store, token) + timedelta(seconds=10)
        result = service.verify(token, "7f3a9b", now=now)
        assert result.state == VerificationState.committed
        assert result.session.username == "alice"
        assert result.session_token
        user = db.query(User).filter(User.username == "alice").one()
        assert user.is_verified is True
        assert verify_password("Secret1", user.hashed_password)
        assert store.get(token) is None

    def test_second_verify_with_same_token_is_token_error(self, service, store, fixed_code):
        token = service.register("alice", "alice@x.com", "Secret1")
        service.verify(token, fixed_code)
        with pytest.raises(TokenError):
            service.verify(token, fixed_code)

    def test_unknown_token(self, service):
        with pytest.raises(TokenError):
            service.verify("not-a-token", "ABCDEF")

    def test_expired_after_ttl(self, service, store, db, fixed_code):
        token = service.register("alice", "alice@x.com", "Secret1")
        late = _created_at(store, token) + timedelta(seconds=60, milliseconds=1)
        with pytest.raises(VerificationExpiredError):
            service.verify(token, fixed_code, now=late)
        assert store.get(token) is None
        assert db.query(User).count() == 0
        # Expired is terminal
        with pytest.raises(TokenError) as exc:
            service.verify(token, fixed_code, now=late)
        assert not isinstance(exc.value, VerificationExpiredError)

    def test_exactly_ttl_is_still_accepted(self, service, store, fixed_code):
        token = service.register("alice", "alice@x.com", "Secret1")
        at_ttl = _created_at(store, token) + timedelta(seconds=60)
        assert service.verify(token, fixed_code, now=at_ttl).state == VerificationState.committed

    def test_wrong_code_keeps_registration_and_ttl(self, service, store, db, fixed_code):
        token = service.register("alice", "alice@x.com", "Secret1")
        created = _created_at(store, token)
        with pytest.raises(CodeMismatchError):
            service.verify(token, "000000", now=created + timedelta(seconds=5))
        assert store.get(token).created_at == created
        result = service.verify(token, fixed_code, now=created + timedelta(seconds=30))
        assert result.state == VerificationState.committed
        failures = db.query(AuditLog).filter(AuditLog.category == "failed_attempt").all()
        assert [f.meta["reason"] for f in failures] == ["rejected"]

    def test_wrong_code_then_expiry(self, service, store, fixed_code):
        token = service.register("alice", "alice@x.com", "Secret1")
        created = _created_at(store, token)
        with pytest.raises(CodeMismatchError):
            service.verify(token, "000000", now=created + timedelta(seconds=5))
        with pytest.raises(VerificationExpiredError):
            service.verify(token, fixed_code, now=created + timedelta(seconds=61))

    def test_account_claimed_meanwhile(self, service, store, make_user, db, fixed_code):
        token = service.register("alice", "alice@x.com", "Secret1")
        make_user(username="alice", email="other@x.com")
        with pytest.raises(ValidationError) as exc:
            service.verify(token, fixed_code)
        assert exc.value.status_code == 409
        assert store.get(token) is None
        assert db.query(User).count() == 1


class TestResend:
    def test_resend_replaces_code_and_restarts_ttl(self, service, store, mailer, monkeypatch):
        codes = iter(["AAAAAA", "BBBBBB"])
        monkeypatch.setattr(verification, "generate_verification_code", lambda: next(codes))
        token = service.register("alice", "alice@x.com", "Secret1")
        first = store.get(token)
        service.resend(token, now=first.created_at + timedelta(seconds=30))
        second = store.get(token)
        assert second.verification_code == "BBBBBB"
        assert second.created_at >= first.created_at
        assert second.password_hash == first.password_hash
        assert len(mailer.sent) == 2
        with pytest.raises(CodeMismatchError):
            service.verify(token, "AAAAAA", now=second.created_at)

    def test_resend_after_expiry(self, service, store):
        token = service.register("alice", "alice@x.com", "Secret1")
        with pytest.raises(VerificationExpiredError):
            service.resend(token, now=_created_at(store, token) + timedelta(minutes=2))
        assert store.get(token) is None

    def test_resend_unknown_token(self, service):
        with pytest.raises(TokenError):
            service.resend("missing")


class TestConcurrentVerify:
    def test_same_token_verified_twice_at_once(self, session_factory, store, sessions, mailer, fixed_code, monkeypatch):
        services = [VerificationService(session_factory(), store, sessions, mailer) for _ in range(2)]
        token = services[0].register("alice", "alice@x.com", "Secret1")
        # Hold both requests until each has read the pending record
        barrier = threading.Barrier(2)
        for svc in services:
            def paused(token, now, ctx, _read=svc._live_pending):
                pending = _read(token, now, ctx)
                barrier.wait(timeout=5)
                return pending

            monkeypatch.setattr(svc, "_live_pending", paused)

        outcomes = []

        def run(svc):
            try:
                outcomes.append(svc.verify(token, fixed_code).state)
            except AppError as e:
                outcomes.append(type(e))

        threads = [threading.Thread(target=run, args=(svc,)) for svc in services]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for svc in services:
            svc.db.close()

        assert len(outcomes) == 2
        assert set(outcomes) == {VerificationState.committed, TokenError}
        check = session_factory()
        assert check.query(User).count() == 1
        check.close()

    def test_code_replaced_by_resend_after_match(self, service, store, fixed_code, monkeypatch):
        token = service.register("alice", "alice@x.com", "Secret1")
        read = service._live_pending

        def read_then_resend(token, now, ctx):
            pending = read(token, now, ctx)
            monkeypatch.setattr(verification, "generate_verification_code", lambda: "BBBBBB")
            service._stage_and_send(token, pending.username, pending.email, pending.password_hash)
            return pending

        monkeypatch.setattr(service, "_live_pending", read_then_resend)
        with pytest.raises(CodeMismatchError):
            service.verify(token, fixed_code)
        assert store.get(token).verification_code == "BBBBBB"


def test_store_failure_keeps_registration(service, store, db, fixed_code, monkeypatch):
    token = service.register("alice", "alice@x.com", "Secret1")

    def broken():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(db, "commit", broken)
    with pytest.raises(StoreError):
        service.verify(token, fixed_code)
    assert store.get(token) is not None
