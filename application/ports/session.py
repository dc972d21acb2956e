"""
Client-side session ports.

The storefront keeps two kinds of per-tab state: the auth token pair and a
small string key/value store (``kpay_reference`` lives there). Application
code depends on these Protocols; infrastructure provides the adapters.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


KPAY_REFERENCE_KEY = "kpay_reference"


@runtime_checkable
class TokenStore(Protocol):
    def get_token(self) -> Optional[str]: ...

    def get_refresh_token(self) -> Optional[str]: ...

    def set_token(self, access_token: str, refresh_token: Optional[str] = None) -> None: ...

    def clear(self) -> None: ...


@runtime_checkable
class SessionStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...
