# alchemist/__init__.py
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from flask_cors import CORS

from .config import get_config
from .errors import AlchemistError
from .extensions import babel, init_openai, init_supabase, login_manager
from .routes import register_routes
from .services.locale_paths import DEFAULT_LANGUAGE, is_supported, resolve_default_language
from .services.realtime import ChangeFeed
from .services.translations import catalog_locale


def select_locale() -> str:
    """flask-babel locale: path segment (set by the language router), then session, then browser."""
    lang = g.get("lang")
    if not is_supported(lang):
        stored = session.get("language")
        lang = stored if is_supported(stored) else resolve_default_language(
            next(iter(request.accept_languages.values()), None)
        )
    return catalog_locale(lang or DEFAULT_LANGUAGE)


def create_app(env: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    load_dotenv()

    app = Flask(__name__, static_folder="static", static_url_path="/static")
    app.config.from_object(get_config(env))
    if overrides:
        app.config.update(overrides)

    # CORS & logging
    CORS(app, origins=app.config["CORS_ORIGINS"] or "*")
    logging.basicConfig(level=logging.INFO)

    # Extensions / clients (tests inject their own)
    if "SUPABASE" not in app.config:
        url, key = app.config["SUPABASE_URL"], app.config["SUPABASE_ANON_KEY"]
        app.config["SUPABASE"] = init_supabase(url, key) if url and key else None
    if "SUPABASE_ADMIN" not in app.config:
        url, key = app.config["SUPABASE_URL"], app.config["SUPABASE_SERVICE_ROLE_KEY"]
        app.config["SUPABASE_ADMIN"] = init_supabase(url, key) if url and key else None
    if not app.config["SUPABASE_ADMIN"]:
        app.logger.warning("Supabase service-role client not configured; data routes will fail.")
    if "OPENAI_CLIENT" not in app.config:
        key = app.config["OPENAI_API_KEY"]
        app.config["OPENAI_CLIENT"] = init_openai(key) if key else None
    app.config.setdefault("CHANGE_FEED", ChangeFeed())

    # ---------- Flask-Login / Babel ----------
    login_manager.init_app(app)
    babel.init_app(app, locale_selector=select_locale)

    @app.errorhandler(AlchemistError)
    def handle_alchemist_error(e: AlchemistError):
        if e.status >= 500:
            app.logger.error("%s: %s", type(e).__name__, e.message, exc_info=e.cause)
        return jsonify(e.to_dict()), e.status

    # ---------- Blueprints ----------
    register_routes(app)

    @app.get("/healthz")
    def health():
        return {"ok": True, "ts": datetime.utcnow().isoformat()}

    return app
