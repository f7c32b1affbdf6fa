from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from ..errors import AuthError
from .auth_context import AuthUser, provider_field

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id,email,subscription_status,usage_count,free_trial_limit,monthly_usage_count,has_completed_survey,stripe_customer_id"


def bearer_token(header: Optional[str]) -> str:
    header = (header or "").strip()
    if not header.lower().startswith("bearer "):
        raise AuthError("No authorization header")
    token = header[7:].strip()
    if not token:
        raise AuthError("No authorization header")
    return token


def verify_access_token(supabase_admin, token: str) -> AuthUser:
    """Resolve an access token to its user with the provider; raises AuthError."""
    try:
        res = supabase_admin.auth.get_user(token)
    except Exception as e:
        raise AuthError("Invalid authentication token", cause=e) from e
    user = provider_field(res, "user")
    auth_id = provider_field(user, "id")
    if not auth_id:
        raise AuthError("Invalid authentication token")
    return AuthUser(id=str(auth_id), email=provider_field(user, "email"))


def fetch_profile(supabase_admin, user_id: str) -> Optional[Dict[str, Any]]:
    r = supabase_admin.table("profiles").select(PROFILE_COLUMNS).eq("id", user_id).limit(1).execute()
    data = getattr(r, "data", None) or []
    return data[0] if data else None


def get_or_bootstrap_profile(supabase_admin, user_id: Optional[str], email: Optional[str]) -> Dict[str, Any]:
    """
    Ensure a profiles row exists for this user. New users start on the apprentice trial.
    """
    if not user_id:
        return {"subscription_status": "apprentice"}
    try:
        row = fetch_profile(supabase_admin, user_id)
        if not row:
            row = {
                "id": user_id,
                "email": email,
                "subscription_status": "apprentice",
                "usage_count": 0,
                "free_trial_limit": 3,
                "monthly_usage_count": 0,
                "has_completed_survey": False,
            }
            supabase_admin.table("profiles").insert(row).execute()
        row["subscription_status"] = (row.get("subscription_status") or "apprentice").lower()
        return row
    except Exception:
        logger.exception("profile bootstrap failed for %s", user_id)
        return {"id": user_id, "email": email, "subscription_status": "apprentice"}
