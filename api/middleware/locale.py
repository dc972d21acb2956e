from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.i18n import set_locale


SUPPORTED_LOCALES = ("en", "rw", "fr")
DEFAULT_LOCALE = "en"


def best_accept_language(header: str) -> str:
    """Highest-q tag of an Accept-Language header, first one on ties.

    'rw-RW,rw;q=0.9,en;q=0.8' -> 'rw-RW'
    """
    ranked: list[tuple[str, float]] = []
    for part in header.split(","):
        tag, _, params = part.strip().partition(";")
        if not tag:
            continue
        weight = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                weight = float(params[2:])
            except ValueError:
                weight = 1.0
        ranked.append((tag.strip(), weight))
    if not ranked:
        return DEFAULT_LOCALE
    ranked.sort(key=lambda item: item[1], reverse=True)
    return ranked[0][0]


def normalize_locale(tag: str) -> str:
    """Reduce a browser tag to one of the storefront locales."""
    primary = (tag or DEFAULT_LOCALE).replace("_", "-").split("-")[0].lower()
    return primary if primary in SUPPORTED_LOCALES else DEFAULT_LOCALE


class LocaleMiddleware(BaseHTTPMiddleware):
    """?lang= > X-Lang > Accept-Language > 'en'."""

    async def dispatch(self, request: Request, call_next):
        tag = request.query_params.get("lang") or request.headers.get("X-Lang")
        if not tag:
            accept = request.headers.get("Accept-Language", "")
            tag = best_accept_language(accept) if accept else DEFAULT_LOCALE
        locale = normalize_locale(tag)
        set_locale(locale)
        request.state.locale = locale
        return await call_next(request)
