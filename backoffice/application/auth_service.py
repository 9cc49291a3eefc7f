from __future__ import annotations

import hashlib
import secrets
from typing import Iterable

from backoffice.domain.contracts import AuthUser
from backoffice.errors import NotFoundError
from backoffice.infrastructure.auth_repository import AuthRepository
from backoffice.policies import normalize_role


class AuthService:
    def __init__(self, repository: AuthRepository | None = None) -> None:
        self.repository = repository or AuthRepository()

    @staticmethod
    def hash_token(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    def authenticate(self, db, token: str | None, raw_tokens: object = None) -> AuthUser | None:
        token = (token or "").strip()
        if not token:
            return None

        profile = self.repository.find_profile_by_token_hash(db, self.hash_token(token))
        if profile is None:
            for configured_token, profile_id in self._parse_tokens(raw_tokens):
                if secrets.compare_digest(configured_token, token):
                    profile = self.repository.find_profile(db, profile_id)
                    break
        if profile is None:
            return None

        return AuthUser(
            profile_id=str(profile["id"]),
            agency_id=str(profile["agency_id"]),
            role=normalize_role(profile.get("role"), default="user"),
            name=profile.get("name"),
        )

    def issue_token(self, db, profile_id: str) -> str:
        if self.repository.find_profile(db, profile_id) is None:
            raise NotFoundError(code="profile_not_found", message_key="permission_denied", details=profile_id)
        token = secrets.token_urlsafe(32)
        self.repository.create_token(db, profile_id=profile_id, token_hash=self.hash_token(token))
        db.commit()
        return token

    @staticmethod
    def _parse_tokens(raw_tokens: object) -> Iterable[tuple[str, str]]:
        if not raw_tokens:
            return []
        if isinstance(raw_tokens, str):
            entries = [chunk.strip() for chunk in raw_tokens.replace("\n", ",").replace(";", ",").split(",")]
        elif isinstance(raw_tokens, (list, tuple, set)):
            entries = [str(item).strip() for item in raw_tokens]
        else:
            return []

        pairs = []
        for entry in entries:
            token, _, profile_id = entry.partition(":")
            if token.strip() and profile_id.strip():
                pairs.append((token.strip(), profile_id.strip()))
        return pairs
