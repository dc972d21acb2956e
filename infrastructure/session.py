"""进程内会话存储（CLI、后台任务与测试使用）"""
from __future__ import annotations

from typing import Dict, Optional


class InMemorySessionStore:
    """Dictionary-backed stand-in for browser session storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class InMemoryTokenStore:
    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None) -> None:
        self._access = access_token
        self._refresh = refresh_token

    def get_token(self) -> Optional[str]:
        return self._access

    def get_refresh_token(self) -> Optional[str]:
        return self._refresh

    def set_token(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        self._access = access_token
        if refresh_token is not None:
            self._refresh = refresh_token

    def clear(self) -> None:
        self._access = None
        self._refresh = None
