from __future__ import annotations
from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_user, logout_user

from ..errors import ValidationError
from ..extensions import User
from ..security.auth import api_login_required
from ..services.subscriptions import active_period_end, check_access
from ..services.users import fetch_profile, get_or_bootstrap_profile, verify_access_token

auth_session_bp = Blueprint("auth_session", __name__, url_prefix="/api")


@auth_session_bp.post("/session/login")
def api_session_login():
    supabase = current_app.config["SUPABASE_ADMIN"]
    data = request.get_json(silent=True) or {}
    token = (data.get("access_token") or "").strip()
    if not token:
        raise ValidationError("Missing access_token")

    # Validate token & get user from Supabase (AuthError -> 401)
    auth_user = verify_access_token(supabase, token)
    row = get_or_bootstrap_profile(supabase, auth_user.id, auth_user.email)
    login_user(User(**{**row, "id": auth_user.id, "email": auth_user.email}))
    current_app.logger.info("session opened for %s", auth_user.id)
    return jsonify(ok=True, plan=row.get("subscription_status", "apprentice"), user_id=auth_user.id)


@auth_session_bp.post("/session/logout")
def api_session_logout():
    if current_user.is_authenticated:
        current_app.logger.info("session closed for %s", current_user.id)
    logout_user()
    # keep the UI language across sign-out
    lang = session.get("language")
    session.clear()
    if lang:
        session["language"] = lang
    return jsonify(ok=True)


@auth_session_bp.get("/access")
@api_login_required
def api_access():
    supabase = current_app.config["SUPABASE_ADMIN"]
    profile = fetch_profile(supabase, current_user.id)
    period_end = active_period_end(supabase, current_user.id) if profile else None
    return jsonify(check_access(profile, period_end).to_dict())
