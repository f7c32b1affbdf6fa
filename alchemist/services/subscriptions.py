# alchemist/services/subscriptions.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

ALCHEMIST_MONTHLY_LIMIT = 30


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    redirect: Optional[str] = None
    title: str = "Welcome back!"
    message: str = "You've successfully signed in."

    def to_dict(self) -> dict:
        return {"allowed": self.allowed, "redirect": self.redirect, "title": self.title, "message": self.message}


def tier_for_price(price_id: str | None) -> str:
    p = (price_id or "").lower()
    if "grandmaster" in p:
        return "grandmaster"
    if "alchemist" in p:
        return "alchemist"
    return "apprentice"


def check_access(profile: dict | None, active_period_end: datetime | None = None, now: datetime | None = None) -> AccessDecision:
    """
    Decide whether a signed-in user may use the workshop right now.
    `active_period_end` is the end of the user's active subscription period, if any.
    """
    if not profile:
        return AccessDecision(False, "/login", "Error", "There was an error checking your subscription status.")

    status = (profile.get("subscription_status") or "apprentice").lower()
    now = now or datetime.now(timezone.utc)

    if status == "grandmaster":
        if active_period_end is not None and active_period_end <= now:
            return AccessDecision(False, "/pricing", "Subscription expired", "Please renew to continue.")
        return AccessDecision(True)

    if status == "alchemist":
        if int(profile.get("monthly_usage_count") or 0) >= ALCHEMIST_MONTHLY_LIMIT:
            return AccessDecision(False, "/account", "Monthly Limit Reached", "You've reached your monthly usage limit.")
        return AccessDecision(True)

    used = int(profile.get("usage_count") or 0)
    limit = int(profile.get("free_trial_limit") or 0)
    if used >= limit:
        if not profile.get("has_completed_survey"):
            return AccessDecision(False, "/survey-page", "Survey Required",
                                  "Please complete the survey to continue using our services.")
        return AccessDecision(False, "/pricing", "Free Trial Completed",
                              "Please upgrade to continue using our services.")
    return AccessDecision(True)


def active_period_end(supabase_admin, user_id: str) -> Optional[datetime]:
    """End of the user's active subscription period, from the `subscriptions` table."""
    r = (supabase_admin.table("subscriptions").select("current_period_end,status")
         .eq("user_id", user_id).eq("status", "active").limit(1).execute())
    rows = getattr(r, "data", None) or []
    raw = rows[0].get("current_period_end") if rows else None
    if not raw:
        return None
    end = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    return end if end.tzinfo else end.replace(tzinfo=timezone.utc)
