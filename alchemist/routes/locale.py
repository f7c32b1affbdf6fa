# alchemist/routes/locale.py
from __future__ import annotations
import os
from urllib.parse import quote, urlparse

from flask import Blueprint, abort, current_app, g, redirect, render_template, request, session
from flask_babel import refresh
from flask_login import current_user

from ..services.language_router import LanguageRouter
from ..services.locale_paths import extract_language, hreflang_urls, is_supported, strip_language
from ..services.translations import CatalogRuntime

locale_bp = Blueprint("locale", __name__)

# Paths the language router never touches
EXEMPT_PREFIXES = ("/static", "/api/", "/functions/", "/locale/", "/healthz")

# Pages that need a signed-in user (path without locale segment)
PROTECTED_PAGES = ("/alchemist-workshop", "/alchemy-records", "/account", "/cover-letter", "/resume-refine")


class RequestNavigator:
    """Navigator for one HTTP request: a replace becomes the redirect target."""

    def __init__(self, path: str):
        self.path = path
        self.redirected = False

    def replace(self, path: str) -> None:
        self.path = path
        self.redirected = True


class SessionRuntime(CatalogRuntime):
    """UI language kept in the Flask session; flask-babel is refreshed on change."""

    def __init__(self):
        stored = session.get("language")
        super().__init__(_translation_dir(), language=stored if is_supported(stored) else None)

    def _persist(self, lang: str) -> None:
        session["language"] = lang
        g.lang = lang
        refresh()


def _translation_dir() -> str:
    directory = current_app.config["BABEL_TRANSLATION_DIRECTORIES"].split(";")[0]
    return directory if os.path.isabs(directory) else os.path.join(current_app.root_path, directory)


def _preferred_locale() -> str | None:
    return next(iter(request.accept_languages.values()), None)


def _with_query(path: str) -> str:
    qs = request.query_string.decode("utf-8", "ignore")
    return f"{path}?{qs}" if qs else path


def _is_safe_next(target: str | None) -> bool:
    if not target:
        return False
    parsed = urlparse(target)
    return not parsed.scheme and not parsed.netloc and target.startswith("/") and not target.startswith("//")


@locale_bp.before_app_request
def route_language():
    path = request.path
    if request.method not in ("GET", "HEAD") or path.startswith(EXEMPT_PREFIXES):
        return None

    navigator = RequestNavigator(path)
    router = LanguageRouter(navigator, SessionRuntime(), preferred_locale=_preferred_locale())
    try:
        router.start()
    finally:
        router.dispose()

    g.lang = extract_language(navigator.path)
    if navigator.redirected:
        return redirect(_with_query(navigator.path))
    return None


@locale_bp.get("/locale/language/<lang_code>", endpoint="set_language")
def change_language(lang_code: str):
    if not is_supported(lang_code):
        abort(404)

    target = request.args.get("next")
    if not _is_safe_next(target):
        referer = urlparse(request.referrer or "").path
        target = referer if _is_safe_next(referer) else "/"

    navigator = RequestNavigator(target)
    runtime = SessionRuntime()
    router = LanguageRouter(navigator, runtime, preferred_locale=_preferred_locale())
    try:
        router.start()
        runtime.change_language(lang_code)
    finally:
        router.dispose()
    return redirect(navigator.path)


@locale_bp.get("/<lang>", endpoint="home")
@locale_bp.get("/<lang>/<path:page>", endpoint="page")
def page(lang: str, page: str = ""):
    if not is_supported(lang):
        abort(404)

    bare = strip_language(request.path)
    if bare in PROTECTED_PAGES and not current_user.is_authenticated:
        return redirect(f"/{lang}/login?next={quote(request.path, safe='/')}")

    return render_template(
        "index.html",
        lang=lang,
        page=page,
        alternates=hreflang_urls(request.path, current_app.config["PUBLIC_BASE_URL"]),
        supabase_url=current_app.config["SUPABASE_URL"],
        supabase_anon_key=current_app.config["SUPABASE_ANON_KEY"],
    )
