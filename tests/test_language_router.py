import json

import pytest

from alchemist.services.language_router import LanguageRouter
from alchemist.services.storage import LANGUAGE_KEY, SharedStorage
from alchemist.services.translations import CatalogRuntime, TranslationRuntime, catalog_locale


class FakeNavigator:
    def __init__(self, path):
        self.path = path
        self.replaced = []

    def replace(self, path):
        self.replaced.append(path)
        self.path = path


class RecordingRuntime(TranslationRuntime):
    """Remembers every bundle load and whether the router was initialized at the time."""

    def __init__(self, language=None):
        super().__init__(language)
        self.loads = []
        self.changes = []
        self.router = None
        self.on_language_changed(self.changes.append)

    def load_resources(self, lang, force=False):
        initialized = self.router.initialized if self.router else None
        self.loads.append((lang, force, initialized))
        return super().load_resources(lang, force)


def make_router(path, language=None, preferred=None):
    nav = FakeNavigator(path)
    runtime = RecordingRuntime(language)
    router = LanguageRouter(nav, runtime, preferred_locale=preferred)
    runtime.router = router
    return router, nav, runtime


def test_root_redirects_to_browser_language_and_loads_before_ready():
    router, nav, runtime = make_router("/", preferred="es-ES")
    assert not router.initialized

    router.start()

    assert nav.replaced == ["/es"]
    assert runtime.language == "es"
    assert router.initialized
    assert ("es", False, False) in runtime.loads
    assert all(initialized is False for _, _, initialized in runtime.loads)


def test_path_without_locale_gets_current_language_without_forced_reload():
    router, nav, runtime = make_router("/pricing", language="ja")
    router.start()

    assert nav.replaced == ["/ja/pricing"]
    assert runtime.language == "ja"
    assert runtime.changes == []
    assert not any(force for _, force, _ in runtime.loads)


def test_path_without_locale_falls_back_to_default_when_no_ui_language():
    router, nav, runtime = make_router("/alchemy-records", preferred="ko-KR")
    router.start()
    assert nav.replaced == ["/ko/alchemy-records"]
    assert runtime.changes == ["ko"]


def test_locale_in_path_wins_and_forces_reload():
    router, nav, runtime = make_router("/zh-TW/account", language="en")
    router.start()

    assert nav.replaced == []
    assert runtime.language == "zh-TW"
    assert ("zh-TW", True, False) in runtime.loads
    assert runtime.changes == ["zh-TW"]


def test_matching_locale_is_a_no_op():
    router, nav, runtime = make_router("/ja/pricing", language="ja")
    router.start()
    assert nav.replaced == []
    assert runtime.loads == []
    assert router.initialized


def test_unknown_segment_is_kept_as_route():
    router, nav, _ = make_router("/fr/pricing", language="en")
    router.start()
    assert nav.replaced == ["/en/fr/pricing"]


def test_language_change_rewrites_url_without_forced_reload():
    router, nav, runtime = make_router("/en/pricing", language="en")
    router.start()

    runtime.change_language("ja")

    assert nav.replaced == ["/ja/pricing"]
    assert ("ja", False, True) in runtime.loads
    assert not any(force for lang, force, _ in runtime.loads if lang == "ja")


def test_language_events_before_initialization_are_ignored():
    router, nav, runtime = make_router("/en/pricing", language="en")
    router.runtime.on_language_changed(router._on_language_changed)
    runtime.change_language("ko")
    assert nav.replaced == []


def test_redirect_guard_skips_same_pair():
    router, nav, _ = make_router("/pricing", language="ja")
    router.start()
    router.navigate("/pricing")
    assert nav.replaced == ["/ja/pricing"]


def test_unprefixed_path_is_redirected_again_after_moving_on():
    router, nav, _ = make_router("/pricing", language="ja")
    router.start()
    router.navigate("/ja/pricing")
    router.navigate("/ja/account")

    nav.path = "/pricing"
    router.navigate("/pricing")

    assert nav.replaced == ["/ja/pricing", "/ja/pricing"]
    assert nav.path == "/ja/pricing"


def test_dispose_stops_listening():
    router, nav, runtime = make_router("/en/pricing", language="en")
    router.start()
    router.dispose()
    runtime.change_language("es")
    assert nav.replaced == []


# ---------- gettext catalogs ----------

def test_catalog_locale_naming():
    assert catalog_locale("zh-CN") == "zh_CN"
    assert catalog_locale("en") == "en"


def test_catalog_runtime_persists_choice_in_shared_storage(tmp_path):
    storage = SharedStorage()
    tab_a = CatalogRuntime(str(tmp_path), storage=storage.view())
    assert tab_a.language is None

    tab_a.change_language("ko")

    tab_b = CatalogRuntime(str(tmp_path), storage=storage.view())
    assert tab_b.language == "ko"
    assert json.loads(tab_b.storage.get_item(LANGUAGE_KEY)) == "ko"


def test_missing_catalog_falls_back_to_source_strings(tmp_path):
    runtime = CatalogRuntime(str(tmp_path), language="ja")
    assert runtime.gettext("Upload your resume") == "Upload your resume"
    assert runtime.has_bundle("ja")


def test_forced_reload_replaces_cached_bundle(tmp_path):
    runtime = CatalogRuntime(str(tmp_path))
    first = runtime.load_resources("es")
    assert runtime.load_resources("es") is first
    assert runtime.load_resources("es", force=True) is not first


@pytest.mark.parametrize("raw", ["not json", json.dumps("xx"), ""])
def test_bad_stored_language_is_ignored(tmp_path, raw):
    storage = SharedStorage()
    storage.view().set_item(LANGUAGE_KEY, raw)
    assert CatalogRuntime(str(tmp_path), storage=storage.view()).language is None
