from __future__ import annotations

import click
from flask import current_app, g, request

from backoffice.application.auth_service import AuthService
from backoffice.db import get_db
from backoffice.domain.contracts import AuthUser
from backoffice.errors import AuthenticationError
from backoffice.policies import normalize_role


_AUTH_SERVICE = AuthService()

_PUBLIC_PATHS = {"/health"}


def register_auth(app) -> None:
    @app.before_request
    def _authenticate():
        path = request.path or "/"
        if path in _PUBLIC_PATHS or not path.startswith("/api/"):
            return None
        if request.method == "OPTIONS":
            return None

        if not app.config.get("AUTH_ENABLED", True):
            user = _prototype_user()
        else:
            user = _AUTH_SERVICE.authenticate(get_db(), _bearer_token(), app.config.get("AUTH_TOKENS"))
        if user is None:
            raise AuthenticationError()

        g.current_user = user
        g.tenant_id = user.agency_id
        return None

    @app.cli.group("auth")
    def auth_group() -> None:
        """Gestao de tokens de API."""

    @auth_group.command("issue-token")
    @click.argument("profile_id")
    def issue_token(profile_id: str) -> None:
        token = _AUTH_SERVICE.issue_token(get_db(), profile_id)
        click.echo(token)


def current_user() -> AuthUser:
    user = getattr(g, "current_user", None)
    if user is None:
        raise AuthenticationError()
    return user


def _bearer_token() -> str | None:
    header = (request.headers.get("Authorization") or "").strip()
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _prototype_user() -> AuthUser | None:
    # Prototype: with AUTH_ENABLED off the caller identifies itself via headers.
    agency_id = (request.headers.get("X-Tenant-Id") or "").strip()
    if not agency_id:
        return None
    return AuthUser(
        profile_id=(request.headers.get("X-User-Id") or "").strip() or "prototype",
        agency_id=agency_id,
        role=normalize_role(request.headers.get("X-User-Role"), default="user"),
        name=current_app.config.get("PROTOTYPE_USER_NAME"),
    )
