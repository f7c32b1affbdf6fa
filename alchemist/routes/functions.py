# alchemist/routes/functions.py
"""
Serverless-style endpoints under /functions/v1, called from the browser with
the user's bearer token (or by Stripe / the analysis workflow).
"""
from __future__ import annotations
import hmac

from flask import Blueprint, current_app, jsonify, request
from flask_cors import CORS

from ..errors import ValidationError
from ..security.auth import bearer_user
from ..services.analysis import record_analysis_result, start_analysis
from ..services.billing import (
    construct_webhook_event, create_checkout_session, detect_environment,
    handle_webhook_event, verify_checkout_session,
)
from ..services.cover_letters import generate_cover_letter
from ..services.email import send_support_email

functions_bp = Blueprint("functions", __name__, url_prefix="/functions/v1")
CORS(functions_bp, allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-environment"])


def _stripe_key(environment: str) -> str:
    cfg = current_app.config
    if environment == "production" and cfg["STRIPE_SECRET_KEY_PRODUCTION"]:
        return cfg["STRIPE_SECRET_KEY_PRODUCTION"]
    return cfg["STRIPE_SECRET_KEY"]


@functions_bp.post("/process-resume")
def process_resume():
    data = request.get_json(silent=True) or {}
    analysis_id = start_analysis(
        current_app.config["SUPABASE_ADMIN"],
        data.get("resumeId"),
        data.get("jobUrl"),
        current_app.config["MAKE_WEBHOOK_URL"],
        bucket=current_app.config["RESUME_BUCKET"],
    )
    return jsonify(success=True, message="Analysis started", analysisId=analysis_id)


@functions_bp.post("/analysis-callback")
def analysis_callback():
    secret = current_app.config["ANALYSIS_CALLBACK_SECRET"]
    given = request.headers.get("X-Callback-Secret") or ""
    if not secret or not hmac.compare_digest(given.encode(), secret.encode()):
        return jsonify(error="unauthorized", message="Invalid callback secret"), 401

    data = request.get_json(silent=True) or {}
    row = record_analysis_result(
        current_app.config["SUPABASE_ADMIN"],
        current_app.config["CHANGE_FEED"],
        data.get("analysisId"),
        data,
    )
    return jsonify(success=True, status=row.get("status"))


@functions_bp.post("/stripe-payment")
def stripe_payment():
    user = bearer_user()
    data = request.get_json(silent=True) or {}
    environment = detect_environment(request.headers.get("Origin"), request.headers.get("x-environment"))
    origin = request.headers.get("Origin") or current_app.config["PUBLIC_BASE_URL"]
    url = create_checkout_session(
        current_app.config["SUPABASE_ADMIN"],
        _stripe_key(environment),
        user,
        data.get("planId"),
        data.get("priceId"),
        bool(data.get("isAnnual")),
        origin,
    )
    return jsonify(sessionUrl=url)


@functions_bp.post("/verify-stripe-session")
def verify_stripe_session():
    data = request.get_json(silent=True) or {}
    environment = detect_environment(request.headers.get("Origin"), request.headers.get("x-environment"))
    try:
        result = verify_checkout_session(
            current_app.config["SUPABASE_ADMIN"],
            _stripe_key(environment),
            data.get("sessionId"),
            environment,
        )
    except Exception as e:
        current_app.logger.exception("verify-stripe-session failed")
        result = {"success": False, "error": str(e) or "Unknown error occurred"}
    # always 200; callers read `success`
    return jsonify(result), 200


@functions_bp.get("/get-stripe-key")
def get_stripe_key():
    key = current_app.config["STRIPE_PUBLISHABLE_KEY"]
    if not key:
        return jsonify(error="server_error", message="Stripe publishable key not found"), 500
    return jsonify(publishableKey=key)


@functions_bp.post("/stripe-webhook")
def stripe_webhook():
    secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    if not secret:
        return jsonify(error="server_error", message="Webhook secret not configured"), 500
    event = construct_webhook_event(
        request.get_data(as_text=True),
        request.headers.get("Stripe-Signature"),
        secret,
    )
    etype = handle_webhook_event(current_app.config["SUPABASE_ADMIN"], current_app.config["STRIPE_SECRET_KEY"], event)
    return jsonify(received=True, type=etype)


@functions_bp.post("/send-support-email")
def support_email():
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("message"):
        raise ValidationError("Email and message are required.")
    cfg = current_app.config
    send_support_email(
        cfg["RESEND_API_KEY"], cfg["SUPPORT_FROM_EMAIL"], cfg["SUPPORT_INBOX"],
        data.get("email"), data.get("message"),
    )
    return jsonify(success=True)


@functions_bp.post("/generate-cover-letter")
def cover_letter():
    user = bearer_user()
    data = request.get_json(silent=True) or {}
    cfg = current_app.config
    letter = generate_cover_letter(
        cfg.get("OPENAI_CLIENT"),
        cfg["SUPABASE_ADMIN"],
        data.get("analysisId"),
        model=cfg["OPENAI_MODEL"],
        user_id=user.id,
    )
    return jsonify(success=True, coverLetter=letter)
