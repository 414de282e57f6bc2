"""Login, registration and session tool implementations."""

from __future__ import annotations

import logging

from autocars_mcp.app import AppContext
from autocars_mcp.errors import AdmissionError, DuplicateEmailError, ValidationError
from autocars_mcp.tools.formatting import json_response

logger = logging.getLogger(__name__)


async def login_impl(app: AppContext, *, email: str, password: str) -> str:
    if not email.strip() or not password:
        return "Error: email and password are required."
    if await app.sessions.login(email, password):
        session = app.session
        assert session is not None
        return f"Logged in as {session.email} ({session.store_name}, {session.mode} mode)."
    return "Error: invalid email or password."


async def register_impl(
    app: AppContext,
    *,
    email: str,
    password: str,
    store_name: str,
    access_key: str,
    confirm_password: str | None = None,
) -> str:
    """Register an account gated by an access key, then log it in.

    An already-registered e-mail is retried as a login with the same
    credentials.
    """
    try:
        await app.sessions.register(
            email,
            password,
            store_name,
            access_key,
            confirm_secret=confirm_password,
        )
    except ValidationError as exc:
        return f"Error: {exc}"
    except AdmissionError as exc:
        return f"Error: {exc}"
    except DuplicateEmailError as exc:
        logger.info("Registration for %s hit an existing account; trying login", exc.email)
        if await app.sessions.login(email, password):
            session = app.session
            assert session is not None
            return f"Account already existed; logged in as {session.email}."
        return "Error: this e-mail is already registered. Log in with its password."

    session = app.session
    assert session is not None
    return (
        f"Account created for {session.store_name} ({session.email}, role {session.role}). "
        "You are now logged in."
    )


async def logout_impl(app: AppContext) -> str:
    if app.session is None:
        return "No active session."
    email = app.session.email
    await app.sessions.logout()
    return f"Logged out {email}."


async def reset_password_impl(app: AppContext, *, email: str) -> str:
    if not email.strip():
        return "Error: email is required."
    if await app.sessions.reset_password(email):
        return f"Password reset e-mail sent to {email.strip()}."
    if not app.sessions.remote_enabled:
        return "Password reset is only available when the remote account service is configured."
    return "Error: could not send the password reset e-mail."


def session_status_impl(app: AppContext) -> str:
    session = app.session
    data = {
        "state": app.sessions.state,
        "remoteConfigured": app.sessions.remote_enabled,
        "session": session.to_dict() if session else None,
        "feedError": str(app.router.last_feed_error) if app.router.last_feed_error else None,
    }
    return json_response("session_status", data)
