import logging
from flask import current_app
from flask_babel import Babel
from flask_login import LoginManager, UserMixin
from openai import OpenAI
from supabase import create_client

from alchemist.services.users import fetch_profile

# 1) A single LoginManager instance you can init on the app
login_manager = LoginManager()
login_manager.login_view = None  # page guards redirect to the localized /login themselves

# 2) flask-babel; the locale selector is attached in create_app
babel = Babel()

# 3) Small factory to build a Supabase client from config
def init_supabase(url: str, key: str):
    if not url or not key:
        raise RuntimeError("Missing SUPABASE_URL or Supabase key")
    return create_client(url, key)

# 4) Same for OpenAI
def init_openai(api_key: str):
    if not api_key:
        raise RuntimeError("Missing OPENAI_API_KEY")
    return OpenAI(api_key=api_key)

# 5) Minimal user object Flask-Login can store in the session
class User(UserMixin):
    def __init__(self, id, email=None, subscription_status="apprentice", **_):
        self.id = id
        self.email = email
        self.subscription_status = (subscription_status or "apprentice").lower()

# 6) Bring the profile back on each request
@login_manager.user_loader
def load_user(user_id: str):
    supabase = current_app.config.get("SUPABASE_ADMIN")
    if not user_id or not supabase:
        return None
    try:
        row = fetch_profile(supabase, user_id)
    except Exception:
        logging.exception("load_user failed")
        return None
    return User(**row) if row else None
