"""Microsoft Entra ID provider backed by MSAL's public client flow."""

import logging
from collections.abc import Callable

import msal

from autoplanner.identity.base import IdentityProvider
from autoplanner.settings import AutoplannerSettings

logger = logging.getLogger(__name__)

_NO_ACCOUNT = {
    "error": "interaction_required",
    "error_description": "No signed-in account is cached for silent acquisition.",
}


class EntraIdentityProvider(IdentityProvider):
    def __init__(self, settings: AutoplannerSettings) -> None:
        if not settings.client_id:
            raise RuntimeError("client_id is required")
        self._client_id = settings.client_id
        self._authority = settings.authority
        self._interactive_timeout = settings.interactive_timeout_seconds
        self._app: msal.PublicClientApplication | None = None

    def _client(self) -> msal.PublicClientApplication:
        # MSAL fetches authority metadata on construction, so build lazily
        if self._app is None:
            self._app = msal.PublicClientApplication(self._client_id, authority=self._authority)
        return self._app

    def _guard(self, call: Callable[..., dict], *args, **kwargs) -> dict:
        try:
            return call(*args, **kwargs)
        except ValueError as exc:
            # raised by MSAL for an unusable authority or client configuration
            return {"error": "invalid_client", "error_description": str(exc)}
        except OSError as exc:
            # requests' exceptions derive from OSError
            return {"error": "temporarily_unavailable", "error_description": str(exc)}

    def _silent(self, scopes: list[str], login_hint: str | None) -> dict:
        app = self._client()
        accounts = app.get_accounts(username=login_hint) if login_hint else app.get_accounts()
        if not accounts:
            return dict(_NO_ACCOUNT)
        result = app.acquire_token_silent_with_error(scopes, account=accounts[0])
        return result or dict(_NO_ACCOUNT)

    def acquire_silent(self, scopes: list[str], login_hint: str | None) -> dict:
        return self._guard(self._silent, scopes, login_hint)

    def _interactive(self, scopes: list[str], login_hint: str | None, prompt: str | None) -> dict:
        logger.info("Opening interactive sign-in (prompt=%s)", prompt or "default")
        return self._client().acquire_token_interactive(
            scopes,
            login_hint=login_hint,
            prompt=prompt,
            timeout=self._interactive_timeout,
        )

    def acquire_interactive(
        self,
        scopes: list[str],
        login_hint: str | None,
        prompt: str | None = None,
    ) -> dict:
        return self._guard(self._interactive, scopes, login_hint, prompt)

    def sign_out(self) -> None:
        if self._app is None:
            return
        for account in self._app.get_accounts():
            self._app.remove_account(account)
