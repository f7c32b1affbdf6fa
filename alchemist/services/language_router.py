# alchemist/services/language_router.py
"""
Keeps the URL's locale segment and the active UI language in agreement.

Navigation drives the UI language (path wins), explicit language switches
drive the URL (runtime wins). All redirects are replaces, never pushes.
"""
from __future__ import annotations
import logging
from typing import Callable, Optional, Protocol

from .locale_paths import extract_language, inject_language, is_supported, resolve_default_language, strip_language
from .translations import TranslationRuntime

logger = logging.getLogger(__name__)


class Navigator(Protocol):
    path: str

    def replace(self, path: str) -> None: ...


class LanguageRouter:
    def __init__(self, navigator: Navigator, runtime: TranslationRuntime, preferred_locale: Optional[str] = None):
        self.navigator = navigator
        self.runtime = runtime
        self.preferred_locale = preferred_locale
        self.initialized = False
        self._redirected_from: Optional[tuple[str, Optional[str]]] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> "LanguageRouter":
        if self._unsubscribe is None:
            self._unsubscribe = self.runtime.on_language_changed(self._on_language_changed)
        self.navigate(self.navigator.path)
        return self

    def dispose(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def default_language(self) -> str:
        return resolve_default_language(self.preferred_locale)

    def navigate(self, path: str) -> None:
        """Run one resolution pass for a path change."""
        pair = (path, self.runtime.language)
        if pair == self._redirected_from:
            logger.debug("skipping already-redirected %s", pair)
            return
        self._redirected_from = None

        lang_in_path = extract_language(path)

        if path == "/" and lang_in_path is None:
            target = self.default_language()
            self._replace(pair, f"/{target}")
            if self.runtime.language != target:
                self.runtime.change_language(target)
            self.runtime.load_resources(target)
        elif lang_in_path:
            if self.runtime.language != lang_in_path:
                self.runtime.load_resources(lang_in_path, force=True)
                self.runtime.change_language(lang_in_path)
        else:
            current = self.runtime.language
            best = current if is_supported(current) else self.default_language()
            self._replace(pair, inject_language(path, best))
            if best != current:
                self.runtime.change_language(best)

        self.initialized = True

    def _on_language_changed(self, lang: str) -> None:
        if not self.initialized:
            return
        path = self.navigator.path
        if extract_language(path) != lang:
            self._replace((path, lang), inject_language(strip_language(path), lang))

    def _replace(self, source: tuple[str, Optional[str]], target: str) -> None:
        self._redirected_from = source
        logger.info("locale redirect %s -> %s", source[0], target)
        self.navigator.replace(target)
