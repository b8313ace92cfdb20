from __future__ import annotations

import gettext
import logging
from contextvars import ContextVar
from pathlib import Path

_current_locale: ContextVar[str] = ContextVar("current_locale", default="vi")
_translators: dict[str, gettext.NullTranslations] = {}
_logger = logging.getLogger(__name__)

SUPPORTED_LOCALES = ("vi", "en")
DEFAULT_LOCALE = "vi"


def set_locale(locale: str) -> None:
    """Set current request locale (fallback to 'vi')."""
    _current_locale.set(locale or DEFAULT_LOCALE)


def get_locale() -> str:
    """Get current request locale (default 'vi')."""
    return _current_locale.get()


def _get_translator(locale: str) -> gettext.NullTranslations:
    tr = _translators.get(locale)
    if tr is not None:
        return tr
    localedir = Path(__file__).resolve().parent.parent / "locales"
    tr = gettext.translation(
        domain="messages",
        localedir=str(localedir),
        languages=[locale],
        fallback=True,
    )
    _translators[locale] = tr
    return tr


def t(msgid: str, default: str | None = None, **params) -> str:
    """Translate msgid using current locale and format with params.

    If translation file is missing or key not found, returns ``default`` when
    given, otherwise msgid itself.
    """
    text = _get_translator(get_locale()).gettext(msgid)
    if text == msgid and default is not None:
        text = default
    if not params:
        return text
    try:
        return text.format(**params)
    except (KeyError, IndexError, ValueError) as exc:
        # Log and fallback to untranslated text to avoid breaking UX
        _logger.warning("i18n_format_failed msgid=%s params=%s error=%s", msgid, list(params.keys()), exc)
        return text
