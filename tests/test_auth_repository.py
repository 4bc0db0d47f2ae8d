"""Tests for AuthRepository on top of a scripted dispatcher."""

from __future__ import annotations

import pytest

from restcaller.auth import AuthRepository
from restcaller.client import ApiClient
from restcaller.config import AuthOperation, ClientSettings
from restcaller.credentials import InMemoryCredentialStore
from restcaller.errors import AuthenticationFailed, TransportConnectionError
from tests.helpers.fake_dispatcher import FakeDispatcher, json_response

LOGIN_RESPONSE = {
    "token": "access-1",
    "refresh_token": "refresh-1",
    "user": {"id": 42, "name": "Ann", "email": "ann@example.com", "avatarUrl": "https://cdn/a.png"},
}


def make_repo(access=None, refresh=None):
    store = InMemoryCredentialStore(access_token=access, refresh_token=refresh)
    dispatcher = FakeDispatcher()
    client = ApiClient(store, ClientSettings(), dispatcher=dispatcher)  # type: ignore[arg-type]
    return AuthRepository(client), dispatcher, store


@pytest.mark.asyncio
async def test_login_saves_tokens_and_returns_user() -> None:
    repo, dispatcher, store = make_repo()
    dispatcher.script("POST", "/auth/login", json_response(200, LOGIN_RESPONSE))
    user = await repo.login("ann@example.com", "pw")
    assert user.id == "42"
    assert user.avatar_url == "https://cdn/a.png"
    assert await store.get_access_token() == "access-1"
    assert await store.get_refresh_token() == "refresh-1"
    assert await repo.is_logged_in() is True
    descriptor, _ = dispatcher.calls[0]
    assert descriptor.body == {"email": "ann@example.com", "password": "pw"}
    assert descriptor.auth_operation is AuthOperation.LOGIN


@pytest.mark.asyncio
async def test_login_unauthorized_raises_without_refresh() -> None:
    repo, dispatcher, store = make_repo(access="old", refresh="r")
    dispatcher.script("POST", "/auth/login", json_response(401, {"message": "Invalid credentials"}))
    with pytest.raises(AuthenticationFailed, match="Invalid credentials") as info:
        await repo.login("ann@example.com", "wrong")
    assert info.value.outcome.status_code == 401
    assert dispatcher.calls_to("POST", "/auth/refresh") == []
    # A failed login leaves existing credentials alone
    assert await store.get_refresh_token() == "r"


@pytest.mark.asyncio
async def test_login_transport_failure_raises() -> None:
    repo, dispatcher, _ = make_repo()
    dispatcher.script("POST", "/auth/login", TransportConnectionError("refused"))
    with pytest.raises(AuthenticationFailed) as info:
        await repo.login("ann@example.com", "pw")
    assert info.value.outcome.status_code == 503


@pytest.mark.asyncio
async def test_register_sends_phone_number() -> None:
    repo, dispatcher, store = make_repo()
    dispatcher.script("POST", "/auth/register", json_response(201, LOGIN_RESPONSE))
    user = await repo.register("Ann", "ann@example.com", "pw", phone_number="+15550100")
    assert user.name == "Ann"
    descriptor, _ = dispatcher.calls[0]
    assert descriptor.body["phoneNumber"] == "+15550100"
    assert descriptor.auth_operation is AuthOperation.REGISTER
    assert await store.get_access_token() == "access-1"


@pytest.mark.asyncio
async def test_register_validation_error_message() -> None:
    repo, dispatcher, _ = make_repo()
    dispatcher.script(
        "POST",
        "/auth/register",
        json_response(400, {"errorSources": [{"path": "email", "message": "Email already exists"}]}),
    )
    with pytest.raises(AuthenticationFailed, match="Email already exists"):
        await repo.register("Ann", "ann@example.com", "pw")


@pytest.mark.asyncio
async def test_logout_clears_store_even_on_failure() -> None:
    repo, dispatcher, store = make_repo(access="a", refresh="r")
    dispatcher.script("POST", "/auth/logout", json_response(500))
    await repo.logout()
    assert await store.get_access_token() is None
    assert await store.get_refresh_token() is None
    assert await repo.is_logged_in() is False
    assert len(dispatcher.calls) == 1
    assert dispatcher.calls[0][1]["Authorization"] == "Bearer a"


@pytest.mark.asyncio
async def test_forgot_password_failure_raises() -> None:
    repo, dispatcher, _ = make_repo()
    dispatcher.script("POST", "/auth/forgot-password", json_response(404, {"message": "No such user"}))
    with pytest.raises(AuthenticationFailed, match="No such user"):
        await repo.forgot_password("nobody@example.com")


@pytest.mark.asyncio
async def test_reset_password_sends_token() -> None:
    repo, dispatcher, _ = make_repo()
    dispatcher.script("POST", "/auth/reset-password", json_response(200, {"success": True}))
    await repo.reset_password("tok", "new-pw")
    assert dispatcher.calls[0][0].body == {"token": "tok", "newPassword": "new-pw"}


@pytest.mark.asyncio
async def test_current_user_survives_until_logout() -> None:
    repo, dispatcher, store = make_repo()
    assert await repo.get_current_user() is None
    dispatcher.script("POST", "/auth/login", json_response(200, LOGIN_RESPONSE))
    dispatcher.script("POST", "/auth/logout", json_response(200, {"success": True}))
    await repo.login("ann@example.com", "pw")
    # A new repository over the same store sees the saved profile
    current = await AuthRepository(repo.client).get_current_user()
    assert current is not None
    assert current.id == "42"
    assert current.email == "ann@example.com"
    assert current.avatar_url == "https://cdn/a.png"
    assert current.phone_number is None
    await repo.logout()
    assert await repo.get_current_user() is None
    assert await store.get_user() is None


@pytest.mark.asyncio
async def test_failed_login_keeps_previous_user() -> None:
    repo, dispatcher, store = make_repo()
    await store.save_user({"id": "1", "name": "Bob"})
    dispatcher.script("POST", "/auth/login", json_response(401, {"message": "Invalid credentials"}))
    with pytest.raises(AuthenticationFailed):
        await repo.login("ann@example.com", "wrong")
    current = await repo.get_current_user()
    assert current is not None and current.name == "Bob"


@pytest.mark.asyncio
async def test_register_saves_phone_number_on_profile() -> None:
    repo, dispatcher, _ = make_repo()
    response = dict(LOGIN_RESPONSE, user={"id": 5, "name": "Cy", "phoneNumber": "+15550100", "role": "buyer"})
    dispatcher.script("POST", "/auth/register", json_response(201, response))
    await repo.register("Cy", "cy@example.com", "pw", phone_number="+15550100")
    current = await repo.get_current_user()
    assert current.phone_number == "+15550100"
    assert current.role == "buyer"
