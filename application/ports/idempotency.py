"""
Idempotency port: at most one order per payment reference.

``claim`` records ``key -> value`` only if the key is new and reports whether
this caller won; ``get`` returns the recorded value.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class IdempotencyStore(Protocol):
    async def get(self, key: str) -> Optional[dict[str, Any]]: ...

    async def claim(self, key: str, value: dict[str, Any]) -> bool: ...
