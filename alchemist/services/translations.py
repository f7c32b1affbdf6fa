# alchemist/services/translations.py
from __future__ import annotations
import json, logging
from typing import Callable, Optional

from babel.support import NullTranslations, Translations

from .locale_paths import DEFAULT_LANGUAGE, is_supported
from .storage import LANGUAGE_KEY, StorageView

logger = logging.getLogger(__name__)

LanguageListener = Callable[[str], None]


def catalog_locale(tag: str) -> str:
    """'zh-CN' -> 'zh_CN' (gettext/Babel directory naming)."""
    return tag.replace("-", "_")


class TranslationRuntime:
    """
    Active UI language plus its loaded message bundles.

    change_language() loads a bundle only if it is not cached yet;
    load_resources(force=True) always goes back to the source.
    """

    def __init__(self, language: Optional[str] = None):
        self._language = language
        self._bundles: dict[str, NullTranslations] = {}
        self._listeners: list[LanguageListener] = []

    @property
    def language(self) -> Optional[str]:
        return self._language

    def has_bundle(self, lang: str) -> bool:
        return lang in self._bundles

    def load_resources(self, lang: str, force: bool = False) -> NullTranslations:
        if force or lang not in self._bundles:
            logger.debug("loading translations for %s (force=%s)", lang, force)
            self._bundles[lang] = self._load_bundle(lang)
        return self._bundles[lang]

    def change_language(self, lang: str) -> None:
        self.load_resources(lang)
        changed = lang != self._language
        self._language = lang
        self._persist(lang)
        if changed:
            for listener in list(self._listeners):
                listener(lang)

    def on_language_changed(self, listener: LanguageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def gettext(self, message: str) -> str:
        lang = self._language or DEFAULT_LANGUAGE
        return self.load_resources(lang).gettext(message)

    # hooks for subclasses
    def _load_bundle(self, lang: str) -> NullTranslations:
        return NullTranslations()

    def _persist(self, lang: str) -> None:
        pass


class CatalogRuntime(TranslationRuntime):
    """Reads compiled gettext catalogs (<directory>/<locale>/LC_MESSAGES/messages.mo)."""

    def __init__(self, directory: str, language: Optional[str] = None, storage: Optional[StorageView] = None, domain: str = "messages"):
        if language is None and storage is not None:
            language = _stored_language(storage)
        super().__init__(language)
        self.directory = directory
        self.domain = domain
        self.storage = storage

    def _load_bundle(self, lang: str) -> NullTranslations:
        return Translations.load(self.directory, [catalog_locale(lang)], self.domain)

    def _persist(self, lang: str) -> None:
        if self.storage is not None:
            self.storage.set_item(LANGUAGE_KEY, json.dumps(lang))


def _stored_language(storage: StorageView) -> Optional[str]:
    raw = storage.get_item(LANGUAGE_KEY)
    if not raw:
        return None
    try:
        lang = json.loads(raw)
    except ValueError:
        return None
    return lang if is_supported(lang) else None
