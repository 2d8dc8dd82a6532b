"""Unit tests for registration, login, rotation and account updates."""

import pytest

from userhub.service.errors import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ExpiredTokenError,
    NotFoundError,
)
from userhub.service.sessions import SessionManager
from userhub.service.tokens import TokenIssuer, TokenKind


async def _register(sessions, **overrides):
    fields = {
        "full_name": "Alice",
        "email": "a@x.com",
        "username": "alice",
        "password": "secret1",
    }
    fields.update(overrides)
    return await sessions.register(**fields)


class TestRegister:
    async def test_returns_sanitized_profile(self, sessions):
        profile = await _register(sessions, username="Alice")

        assert profile.username == "alice"
        assert profile.full_name == "Alice"
        assert not hasattr(profile, "password_hash")

    @pytest.mark.parametrize("missing", ["full_name", "email", "username", "password"])
    async def test_blank_field_is_rejected(self, sessions, missing):
        with pytest.raises(BadRequestError) as exc_info:
            await _register(sessions, **{missing: "   "})
        assert exc_info.value.message == "All fields are required"
        assert exc_info.value.detail == {"missing": [missing]}

    async def test_none_field_is_rejected(self, sessions):
        with pytest.raises(BadRequestError):
            await _register(sessions, email=None)

    async def test_duplicate_is_a_conflict(self, sessions):
        await _register(sessions)
        with pytest.raises(ConflictError):
            await _register(sessions, username="ALICE", email="new@x.com")

    async def test_password_is_hashed_as_submitted(self, sessions, credentials):
        """Surrounding spaces are part of the password."""
        profile = await _register(sessions, password=" secret1 ")
        user = await credentials.get_user(profile.id)

        assert credentials.verify_password(user, " secret1 ") is True
        assert credentials.verify_password(user, "secret1") is False


class TestLogin:
    async def test_login_issues_and_persists_tokens(self, sessions, credentials, tokens):
        profile = await _register(sessions)
        result = await sessions.login(username="alice", password="secret1")

        assert result.user.id == profile.id
        stored = await credentials.get_user(profile.id)
        assert stored.refresh_token == result.tokens.refresh_token
        assert tokens.verify(result.tokens.access_token, TokenKind.ACCESS)["sub"] == profile.id

    async def test_login_by_email(self, sessions):
        await _register(sessions)
        result = await sessions.login(email="A@X.COM", password="secret1")
        assert result.user.username == "alice"

    async def test_missing_identifier(self, sessions):
        with pytest.raises(BadRequestError):
            await sessions.login(password="secret1")

    async def test_missing_password(self, sessions):
        await _register(sessions)
        with pytest.raises(BadRequestError):
            await sessions.login(username="alice", password="")

    async def test_unknown_user(self, sessions):
        with pytest.raises(NotFoundError):
            await sessions.login(username="nobody", password="secret1")

    async def test_wrong_password(self, sessions, credentials):
        profile = await _register(sessions)
        with pytest.raises(AuthenticationError) as exc_info:
            await sessions.login(username="alice", password="wrong")
        assert exc_info.value.message == "Invalid user credentials"
        assert (await credentials.get_user(profile.id)).refresh_token is None

    async def test_second_login_replaces_refresh_token(self, sessions):
        await _register(sessions)
        first = await sessions.login(username="alice", password="secret1")
        await sessions.login(username="alice", password="secret1")

        with pytest.raises(AuthenticationError):
            await sessions.refresh(first.tokens.refresh_token)


class TestRefresh:
    async def test_rotation_invalidates_previous_token(self, sessions, credentials):
        await _register(sessions)
        login = await sessions.login(username="alice", password="secret1")

        rotated = await sessions.refresh(login.tokens.refresh_token)
        assert rotated.refresh_token != login.tokens.refresh_token
        assert (await credentials.get_user(login.user.id)).refresh_token == rotated.refresh_token

        with pytest.raises(AuthenticationError) as exc_info:
            await sessions.refresh(login.tokens.refresh_token)
        assert exc_info.value.message == "Refresh token is expired or used"

        again = await sessions.refresh(rotated.refresh_token)
        assert again.refresh_token != rotated.refresh_token

    @pytest.mark.parametrize("token", [None, "", "   "])
    async def test_missing_token(self, sessions, token):
        with pytest.raises(AuthenticationError) as exc_info:
            await sessions.refresh(token)
        assert exc_info.value.message == "Unauthorized request"

    async def test_access_token_cannot_refresh(self, sessions):
        await _register(sessions)
        login = await sessions.login(username="alice", password="secret1")
        with pytest.raises(AuthenticationError) as exc_info:
            await sessions.refresh(login.tokens.access_token)
        assert exc_info.value.message == "Invalid refresh token"

    async def test_garbage_token(self, sessions):
        with pytest.raises(AuthenticationError):
            await sessions.refresh("not.a.token")

    async def test_expired_token_reads_as_invalid(self, settings, credentials):
        """An expired but correctly signed token is reported like a forged one."""
        now = [1_700_000_000.0]
        manager = SessionManager(credentials, TokenIssuer(settings, clock=lambda: now[0]))
        await _register(manager)
        login = await manager.login(username="alice", password="secret1")

        now[0] += settings.refresh_token_ttl.total_seconds()
        with pytest.raises(AuthenticationError) as exc_info:
            await manager.refresh(login.tokens.refresh_token)
        assert exc_info.value.message == "Invalid refresh token"
        assert isinstance(exc_info.value.__cause__, ExpiredTokenError)

    async def test_refresh_after_logout_fails(self, sessions):
        await _register(sessions)
        login = await sessions.login(username="alice", password="secret1")
        await sessions.logout(login.user.id)

        with pytest.raises(AuthenticationError):
            await sessions.refresh(login.tokens.refresh_token)

    async def test_logout_is_idempotent(self, sessions, credentials):
        profile = await _register(sessions)
        await sessions.logout(profile.id)
        await sessions.logout(profile.id)
        assert (await credentials.get_user(profile.id)).refresh_token is None


class TestChangePassword:
    async def test_change_password(self, sessions):
        profile = await _register(sessions)
        await sessions.change_password(
            profile.id, old_password="secret1", new_password="secret2"
        )

        await sessions.login(username="alice", password="secret2")
        with pytest.raises(AuthenticationError):
            await sessions.login(username="alice", password="secret1")

    async def test_wrong_old_password(self, sessions):
        profile = await _register(sessions)
        with pytest.raises(BadRequestError) as exc_info:
            await sessions.change_password(
                profile.id, old_password="nope", new_password="secret2"
            )
        assert exc_info.value.message == "Invalid old password"

    async def test_missing_new_password(self, sessions):
        profile = await _register(sessions)
        with pytest.raises(BadRequestError):
            await sessions.change_password(
                profile.id, old_password="secret1", new_password=""
            )

    async def test_existing_refresh_token_survives(self, sessions):
        await _register(sessions)
        login = await sessions.login(username="alice", password="secret1")
        await sessions.change_password(
            login.user.id, old_password="secret1", new_password="secret2"
        )

        rotated = await sessions.refresh(login.tokens.refresh_token)
        assert rotated.refresh_token


class TestAccount:
    async def test_get_current_user(self, sessions):
        profile = await _register(sessions)
        assert (await sessions.get_current_user(profile.id)).id == profile.id

    async def test_get_current_user_missing(self, sessions):
        with pytest.raises(NotFoundError):
            await sessions.get_current_user("missing")

    async def test_update_account_details(self, sessions):
        profile = await _register(sessions)
        updated = await sessions.update_account_details(
            profile.id, full_name="Alice L.", email="Alice@Example.com"
        )

        assert updated.full_name == "Alice L."
        assert updated.email == "alice@example.com"
        assert updated.username == "alice"

    async def test_update_requires_a_field(self, sessions):
        profile = await _register(sessions)
        with pytest.raises(BadRequestError):
            await sessions.update_account_details(profile.id, full_name="  ")

    async def test_update_email_conflict(self, sessions):
        await _register(sessions)
        bob = await _register(sessions, username="bob", email="b@x.com")
        with pytest.raises(ConflictError):
            await sessions.update_account_details(bob.id, email="a@x.com")
