# alchemist/security/auth.py
from __future__ import annotations
from functools import wraps
from urllib.parse import quote

from flask import current_app, g, jsonify, redirect, request
from flask_login import current_user

from ..services.locale_paths import DEFAULT_LANGUAGE
from ..services.users import bearer_token, verify_access_token


def _wants_json():
    """
    Treat requests as XHR/API when:
      - path starts with /api or /functions,
      - Accept header prefers JSON,
      - body is JSON,
      - or X-Requested-With indicates AJAX.
    """
    accept = (request.headers.get("Accept") or "").lower()
    return (
        request.path.startswith(("/api/", "/functions/"))
        or "application/json" in accept
        or request.is_json
        or request.headers.get("X-Requested-With") == "XMLHttpRequest"
    )


def api_login_required(view):
    """
    If authenticated: run the view.
    If not and it's API/XHR: 401 JSON.
    If not and it's a normal nav: 302 to the localized /login with ?next=…
    """
    @wraps(view)
    def wrapped(*args, **kwargs):
        if current_user.is_authenticated:
            return view(*args, **kwargs)
        if _wants_json():
            return jsonify(error="unauthorized", message="Login required"), 401
        lang = g.get("lang") or DEFAULT_LANGUAGE
        return redirect(f"/{lang}/login?next={quote(request.path, safe='/')}")
    return wrapped


def bearer_user():
    """Resolve the Authorization header of an edge-function call; raises AuthError."""
    token = bearer_token(request.headers.get("Authorization"))
    return verify_access_token(current_app.config["SUPABASE_ADMIN"], token)
