"""
Client du fournisseur d'identité (Supabase Auth, API REST).

- qui est l'utilisateur derrière ce jeton ?
- liste des e-mails par id (écran d'administration des utilisateurs)
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from stockroom.app.core.config import settings
from stockroom.services.errors import AuthenticationError, GatewayError

logger = logging.getLogger(__name__)

ADMIN_USERS_PAGE_SIZE = 1000


class IdentityProvider(Protocol):
    def resolve_user_id(self, access_token: str) -> str: ...

    def list_user_emails(self) -> dict[str, str]: ...


class SupabaseIdentityProvider:
    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_role_key: str = "",
        timeout: int = 10,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "SupabaseIdentityProvider":
        return cls(
            base_url=settings.SUPABASE_URL,
            anon_key=settings.SUPABASE_ANON_KEY,
            service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            timeout=settings.IDENTITY_TIMEOUT,
        )

    def _get(self, path: str, *, key: str, token: str, params: dict | None = None) -> requests.Response:
        if not self.base_url:
            raise GatewayError("Identity provider URL is not configured")
        try:
            return self.session.get(
                f"{self.base_url}{path}",
                headers={"apikey": key, "Authorization": f"Bearer {token}"},
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Identity provider unreachable (%s)", path)
            raise GatewayError("Identity provider unreachable") from exc

    @staticmethod
    def _json(response: requests.Response) -> dict:
        try:
            payload = response.json()
        except ValueError as exc:
            # requests.JSONDecodeError hérite de ValueError
            raise GatewayError("Identity provider returned a non-JSON response") from exc
        if not isinstance(payload, dict):
            raise GatewayError("Identity provider returned an unexpected payload")
        return payload

    def resolve_user_id(self, access_token: str) -> str:
        if not access_token:
            raise AuthenticationError("Missing access token")

        response = self._get("/auth/v1/user", key=self.anon_key, token=access_token)
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid or expired access token")
        if not response.ok:
            raise GatewayError(f"Identity provider returned {response.status_code}")

        user_id = self._json(response).get("id")
        if not user_id:
            raise AuthenticationError("Access token does not identify a user")
        return str(user_id)

    def list_user_emails(self) -> dict[str, str]:
        if not self.service_role_key:
            raise GatewayError("Service role key is not configured")

        emails: dict[str, str] = {}
        page = 1
        while True:
            response = self._get(
                "/auth/v1/admin/users",
                key=self.service_role_key,
                token=self.service_role_key,
                params={"page": page, "per_page": ADMIN_USERS_PAGE_SIZE},
            )
            if not response.ok:
                raise GatewayError(f"Identity provider returned {response.status_code}")

            users = self._json(response).get("users") or []
            for user in users:
                if user.get("id") and user.get("email"):
                    emails[str(user["id"])] = user["email"]

            if len(users) < ADMIN_USERS_PAGE_SIZE:
                return emails
            page += 1
