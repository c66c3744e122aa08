"""In-memory token lifecycle: cache, silent → interactive → consent escalation."""

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from datetime import UTC, datetime, timedelta

from autoplanner.errors import AuthError, AuthErrorKind, classify_auth_error
from autoplanner.identity.base import IdentityProvider
from autoplanner.models import Credential

logger = logging.getLogger(__name__)

# Silent failures that an interactive prompt can resolve
_ESCALATE = {
    AuthErrorKind.INTERACTION_REQUIRED,
    AuthErrorKind.NOT_SIGNED_IN,
    AuthErrorKind.CONSENT_REQUIRED,
}


def utc_now() -> datetime:
    return datetime.now(UTC)


class CredentialBroker:
    """Owns the access token for the task service.

    Concurrent get_token calls for the same scope set share one underlying
    acquisition, so at most one interactive prompt is ever open per scope set.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        login_hint: str | None = None,
        expiry_margin: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._provider = provider
        self.login_hint = login_hint
        self._margin = expiry_margin
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: dict[frozenset[str], Credential] = {}
        self._pending: dict[frozenset[str], Future] = {}

    def _cached(self, key: frozenset[str]) -> Credential | None:
        now = self._clock()
        for cached_key, credential in list(self._cache.items()):
            if credential.is_expiring(now, self._margin):
                del self._cache[cached_key]
                continue
            if credential.covers(key):
                return credential
        return None

    def get_token(self, scopes: Iterable[str]) -> Credential:
        key = frozenset(scopes)
        with self._lock:
            credential = self._cached(key)
            if credential is not None:
                return credential
            pending = self._pending.get(key)
            owner = pending is None
            if owner:
                pending = Future()
                self._pending[key] = pending

        if not owner:
            logger.debug("Joining in-flight token acquisition for %s", sorted(key))
            return pending.result()

        try:
            credential = self._acquire(key)
        except Exception as exc:
            pending.set_exception(exc)
            raise
        else:
            with self._lock:
                self._cache[key] = credential
            pending.set_result(credential)
            return credential
        finally:
            with self._lock:
                self._pending.pop(key, None)

    def _acquire(self, key: frozenset[str]) -> Credential:
        scopes = sorted(key)
        result = self._provider.acquire_silent(scopes, self.login_hint)
        if "access_token" in result:
            logger.info("Token acquired silently")
            return self._credential_from_result(result, key)

        kind = self._kind(result)
        if kind not in _ESCALATE:
            raise self._error(result)
        logger.info("Silent acquisition failed (%s); prompting", kind)

        result = self._provider.acquire_interactive(scopes, self.login_hint)
        if "access_token" not in result and self._kind(result) is AuthErrorKind.CONSENT_REQUIRED:
            logger.info("Consent required; retrying once with consent prompt")
            result = self._provider.acquire_interactive(scopes, self.login_hint, prompt="consent")
        if "access_token" not in result:
            raise self._error(result)

        logger.info("Token acquired interactively")
        return self._credential_from_result(result, key)

    def _kind(self, result: dict) -> AuthErrorKind:
        return classify_auth_error(result.get("error"), result.get("error_codes") or ())

    def _error(self, result: dict) -> AuthError:
        error = AuthError(self._kind(result), result.get("error_description"))
        logger.warning("Token acquisition failed: %s (%s)", error.kind, error.description)
        return error

    def _credential_from_result(self, result: dict, requested: frozenset[str]) -> Credential:
        now = self._clock()
        granted = frozenset(result.get("scope", "").split()) or requested
        return Credential(
            value=result["access_token"],
            scopes=granted,
            acquired_at=now,
            expires_at=now + timedelta(seconds=int(result.get("expires_in", 3600))),
        )

    def invalidate(self, credential: Credential | None = None) -> None:
        """Drop one cached credential (e.g. after a 401), or all of them."""
        with self._lock:
            if credential is None:
                self._cache.clear()
                return
            for key, cached in list(self._cache.items()):
                if cached.value == credential.value:
                    del self._cache[key]

    def sign_out(self) -> None:
        self.invalidate()
        self._provider.sign_out()
