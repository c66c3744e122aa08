"""Abstract base class for identity providers.

Results follow the MSAL convention: a dict carrying either ``access_token``
(plus ``expires_in`` and ``scope``) or ``error``, ``error_description`` and
``error_codes``.
"""

from abc import ABC, abstractmethod


class IdentityProvider(ABC):
    @abstractmethod
    def acquire_silent(self, scopes: list[str], login_hint: str | None) -> dict: ...

    @abstractmethod
    def acquire_interactive(
        self,
        scopes: list[str],
        login_hint: str | None,
        prompt: str | None = None,
    ) -> dict: ...

    @abstractmethod
    def sign_out(self) -> None: ...
