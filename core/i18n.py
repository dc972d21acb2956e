"""
gettext 翻译

Message ids are the English texts the storefront already shows, so a locale
without a compiled catalog (``locales/<lang>/LC_MESSAGES/messages.mo``)
simply renders English. The locale is per request, set by LocaleMiddleware.
"""
from __future__ import annotations

import gettext
from contextvars import ContextVar
from functools import lru_cache
from pathlib import Path

import structlog

DEFAULT_LOCALE = "en"
LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"

_current_locale: ContextVar[str] = ContextVar("current_locale", default=DEFAULT_LOCALE)
_logger = structlog.get_logger(__name__)


def set_locale(locale: str) -> None:
    _current_locale.set(locale or DEFAULT_LOCALE)


def get_locale() -> str:
    return _current_locale.get()


@lru_cache(maxsize=None)
def _catalog(locale: str) -> gettext.NullTranslations:
    return gettext.translation("messages", localedir=str(LOCALES_DIR), languages=[locale], fallback=True)


def t(msgid: str, **params) -> str:
    """
    按当前 locale 翻译并格式化

    ``t("Payment validation failed: {reason}", reason=...)``；占位符与参数
    不匹配时记录告警并返回未格式化的文本。
    """
    text = _catalog(get_locale()).gettext(msgid)
    if not params:
        return text
    try:
        return text.format(**params)
    except (KeyError, IndexError, ValueError) as exc:
        _logger.warning("i18n_format_failed", msgid=msgid, locale=get_locale(), params=sorted(params), error=str(exc))
        return text
