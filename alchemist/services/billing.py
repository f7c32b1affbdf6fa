# alchemist/services/billing.py
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import stripe

from ..errors import ExternalServiceError, NotFoundError, ValidationError
from .subscriptions import tier_for_price
from .users import fetch_profile

logger = logging.getLogger(__name__)

PLACEHOLDER_SESSION_ID = "{CHECKOUT_SESSION_ID}"
PRODUCTION_HOSTS = ("resumealchemist.com", "resumealchemist.qwizai.com")


def detect_environment(origin: str | None, x_environment: str | None) -> str:
    """x-environment header wins; otherwise guess from the calling origin."""
    if x_environment:
        return x_environment
    origin = origin or ""
    if "staging.resumealchemist" in origin:
        return "staging"
    if any(h in origin for h in PRODUCTION_HOSTS):
        return "production"
    if "localhost" in origin or "127.0.0.1" in origin:
        return "development"
    if "vercel.app" in origin and ("-git-" in origin or "-pr-" in origin):
        return "preview"
    return "staging"


def _iso(ts: Optional[int]) -> Optional[str]:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat() if ts else None


def create_checkout_session(supabase_admin, api_key: str, user, plan_id: str, price_id: str, is_annual: bool, origin: str) -> str:
    """Create a subscription-mode Checkout Session and return its redirect URL."""
    if not plan_id or not price_id:
        raise ValidationError("Missing plan or price information")
    if not api_key:
        raise ExternalServiceError("Stripe configuration error")

    profile = fetch_profile(supabase_admin, user.id)
    if profile is None:
        raise NotFoundError("Error fetching user profile")
    customer_id = profile.get("stripe_customer_id")
    annual = "true" if is_annual else "false"
    metadata = {"user_id": user.id, "plan_id": plan_id, "is_annual": annual}

    try:
        if not customer_id:
            customer = stripe.Customer.create(api_key=api_key, email=user.email, metadata={"user_id": user.id})
            customer_id = customer["id"]
            supabase_admin.table("profiles").update({"stripe_customer_id": customer_id}).eq("id", user.id).execute()
            logger.info("created Stripe customer %s for %s", customer_id, user.id)

        success_url = f"{origin}/payment-success?{urlencode({'plan': plan_id, 'is_annual': annual})}"
        session = stripe.checkout.Session.create(
            api_key=api_key,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=f"{success_url}&session_id={PLACEHOLDER_SESSION_ID}",
            cancel_url=f"{origin}/pricing?canceled=true",
            client_reference_id=user.id,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        raise ExternalServiceError(getattr(e, "user_message", None) or "Error creating checkout session", cause=e) from e

    logger.info("checkout session %s created for %s (%s)", session["id"], user.id, plan_id)
    return session["url"]


def verify_checkout_session(supabase_admin, api_key: str, session_id: str | None, environment: str) -> dict[str, Any]:
    """
    Confirm a finished checkout. Never raises: the caller always answers 200 with
    a `success` flag so the payment-success page can show the message.
    """
    if not api_key:
        return {"success": False, "error": "Stripe configuration error"}
    if not session_id:
        return {"success": False, "error": "Missing session ID"}
    if session_id == PLACEHOLDER_SESSION_ID:
        return {"success": False,
                "error": "Invalid session ID: received placeholder {CHECKOUT_SESSION_ID} instead of actual session ID"}

    existing = supabase_admin.table("transactions").select("*").eq("stripe_session_id", session_id).limit(1).execute()
    rows = getattr(existing, "data", None) or []
    if rows:
        tx = rows[0]
        return {
            "success": True,
            "message": "Transaction already recorded",
            "plan": tx.get("tier"),
            "isAnnual": tx.get("payment_period") == "annual",
            "userId": tx.get("user_id"),
            "sessionId": session_id,
            "environment": environment,
        }

    try:
        session = stripe.checkout.Session.retrieve(session_id, api_key=api_key)
    except stripe.StripeError as e:
        return {"success": False, "error": f"Stripe API error: {e}"}
    if not session:
        return {"success": False, "error": "Invalid session ID"}
    if session.get("payment_status") != "paid":
        return {"success": False, "error": "Payment not completed"}

    metadata = session.get("metadata") or {}
    session_env = metadata.get("environment") or environment
    customer_id = session.get("customer")
    try:
        user_id = _user_for_customer(supabase_admin, api_key, customer_id, session_env)
    except (stripe.StripeError, NotFoundError):
        logger.exception("could not resolve user for customer %s", customer_id)
        return {"success": False, "error": "Could not verify user"}

    return {
        "success": True,
        "plan": metadata.get("plan_id") or "unknown",
        "isAnnual": metadata.get("is_annual") == "true",
        "userId": user_id,
        "sessionId": session_id,
        "environment": session_env,
    }


def _user_for_customer(supabase_admin, api_key: str, customer_id: str, environment: str) -> str:
    customer = stripe.Customer.retrieve(customer_id, api_key=api_key)
    meta = (customer or {}).get("metadata") or {}
    if customer and not customer.get("deleted") and meta.get("user_id"):
        return meta["user_id"]

    column = "stripe_customer_id_production" if environment == "production" else "stripe_customer_id"
    r = supabase_admin.table("profiles").select("id").eq(column, customer_id).limit(1).execute()
    rows = getattr(r, "data", None) or []
    if not rows:
        raise NotFoundError("Could not find user associated with Stripe customer")
    user_id = rows[0]["id"]
    stripe.Customer.modify(customer_id, api_key=api_key, metadata={"user_id": user_id})
    return user_id


# ---------- webhook ----------

def construct_webhook_event(payload: str, signature: str | None, secret: str):
    if not signature:
        raise ValidationError("No Stripe signature found in request")
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as e:
        raise ValidationError("Bad payload", cause=e) from e
    except stripe.SignatureVerificationError as e:
        raise ValidationError(f"Webhook signature verification failed: {e}", cause=e) from e


def handle_webhook_event(supabase_admin, api_key: str, event) -> str:
    etype = event["type"]
    obj = event["data"]["object"]

    if etype == "checkout.session.completed":
        _activate_subscription(supabase_admin, api_key, obj)
    elif etype == "customer.subscription.updated":
        user_id = _subscriber_id(supabase_admin, obj.get("customer"))
        supabase_admin.table("subscriptions").update({
            "status": obj.get("status"),
            "current_period_start": _iso(obj.get("current_period_start")),
            "current_period_end": _iso(obj.get("current_period_end")),
            "cancel_at_period_end": obj.get("cancel_at_period_end"),
        }).eq("user_id", user_id).execute()
        logger.info("subscription updated for %s", user_id)
    elif etype == "customer.subscription.deleted":
        user_id = _subscriber_id(supabase_admin, obj.get("customer"))
        supabase_admin.table("profiles").update({"subscription_status": "apprentice"}).eq("id", user_id).execute()
        supabase_admin.table("subscriptions").update({
            "status": "canceled",
            "cancel_at_period_end": False,
        }).eq("user_id", user_id).execute()
        logger.info("subscription canceled for %s", user_id)
    else:
        logger.info("unhandled Stripe event type: %s", etype)
    return etype


def _activate_subscription(supabase_admin, api_key: str, session) -> None:
    user_id = session.get("client_reference_id")
    customer_id = session.get("customer")
    subscription_id = session.get("subscription")
    if not user_id or not customer_id or not subscription_id:
        raise ValidationError("Missing required fields in checkout session")

    try:
        sub = stripe.Subscription.retrieve(subscription_id, api_key=api_key)
    except stripe.StripeError as e:
        raise ExternalServiceError("Could not retrieve subscription details from Stripe", cause=e) from e

    price_id = sub["items"]["data"][0]["price"]["id"]
    supabase_admin.rpc("update_subscription_and_transaction", {
        "p_user_id": user_id,
        "p_stripe_customer_id": customer_id,
        "p_stripe_subscription_id": subscription_id,
        "p_status": sub.get("status"),
        "p_tier": tier_for_price(price_id),
        "p_current_period_start": _iso(sub.get("current_period_start")),
        "p_current_period_end": _iso(sub.get("current_period_end")),
        "p_cancel_at_period_end": sub.get("cancel_at_period_end"),
        "p_stripe_session_id": session.get("id"),
        "p_amount": (session.get("amount_total") or 0) / 100,
        "p_currency": session.get("currency"),
        "p_payment_status": session.get("payment_status"),
    }).execute()
    logger.info("activated %s subscription for %s", tier_for_price(price_id), user_id)


def _subscriber_id(supabase_admin, customer_id: str | None) -> str:
    r = supabase_admin.table("subscriptions").select("user_id").eq("stripe_customer_id", customer_id).limit(1).execute()
    rows = getattr(r, "data", None) or []
    if not rows:
        raise NotFoundError("Error finding user with stripe customer ID")
    return rows[0]["user_id"]
