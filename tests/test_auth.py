import pytest

from cleanstride.auth import SIGNED_IN, SIGNED_OUT, AuthContext, AuthError, AuthService, AuthSession
from cleanstride.errors import ValidationError

from conftest import NOW


@pytest.fixture
def auth_service(repos):
    return AuthService(profile_repo=repos.profile)


def test_sign_up_then_sign_in(auth_service, store):
    pid = auth_service.sign_up(None, email=" Rina@Example.com ", password="secret-pass", full_name="Rina Melati")
    assert store.profiles[pid].role == "customer"
    assert "rina@example.com" in store.accounts
    assert store.accounts["rina@example.com"]["password_hash"] != "secret-pass"

    session = auth_service.sign_in(None, email="rina@example.com", password="secret-pass", now=NOW)
    assert session.profile.id == pid
    assert session.signed_in_at == NOW


@pytest.mark.parametrize(
    "email,password,name",
    [("nope", "secret-pass", "A"), ("a@b.c", "short", "A"), ("a@b.c", "secret-pass", " ")],
)
def test_sign_up_validation(auth_service, email, password, name):
    with pytest.raises(ValidationError):
        auth_service.sign_up(None, email=email, password=password, full_name=name)


def test_duplicate_email(auth_service):
    auth_service.sign_up(None, email="a@b.c", password="secret-pass", full_name="A")
    with pytest.raises(ValidationError):
        auth_service.sign_up(None, email="A@B.C", password="secret-pass", full_name="B")


def test_wrong_password_and_unknown_user(auth_service):
    auth_service.sign_up(None, email="a@b.c", password="secret-pass", full_name="A")
    with pytest.raises(AuthError):
        auth_service.sign_in(None, email="a@b.c", password="wrong-pass")
    with pytest.raises(AuthError):
        auth_service.sign_in(None, email="x@b.c", password="secret-pass")


def test_disabled_profile_cannot_sign_in(auth_service, store):
    from dataclasses import replace

    pid = auth_service.sign_up(None, email="a@b.c", password="secret-pass", full_name="A")
    store.profiles[pid] = replace(store.profiles[pid], is_active=False)
    with pytest.raises(AuthError):
        auth_service.sign_in(None, email="a@b.c", password="secret-pass")
    assert auth_service.load_profile(None, pid) is None


def test_context_notifies_subscribers_until_unsubscribed(customer):
    ctx = AuthContext()
    seen = []
    unsubscribe = ctx.subscribe(lambda event, session: seen.append((event, session)))
    session = AuthSession(profile=customer, email="a@b.c", signed_in_at=NOW)

    ctx.set_session(session)
    assert ctx.profile == customer
    ctx.clear()
    assert ctx.session is None
    unsubscribe()
    ctx.set_session(session)

    assert seen == [(SIGNED_IN, session), (SIGNED_OUT, None)]
    unsubscribe()


def test_clear_when_signed_out_is_silent():
    ctx = AuthContext()
    seen = []
    ctx.subscribe(lambda event, session: seen.append(event))
    ctx.clear()
    assert seen == []
    with pytest.raises(AuthError):
        ctx.require_profile()


def test_failing_listener_does_not_block_others(customer):
    ctx = AuthContext()
    seen = []

    def broken(event, session):
        raise RuntimeError("boom")

    ctx.subscribe(broken)
    ctx.subscribe(lambda event, session: seen.append(event))
    ctx.set_session(AuthSession(profile=customer, email="a@b.c", signed_in_at=NOW))
    assert seen == [SIGNED_IN]
