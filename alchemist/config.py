from __future__ import annotations
import os


def _float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


class Config:
    # Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key")
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Supabase
    SUPABASE_URL = os.environ.get("SUPABASE_URL", "").rstrip("/")
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    RESUME_BUCKET = os.environ.get("RESUME_BUCKET", "resumes")

    # Stripe (production key is picked when the caller says so)
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_SECRET_KEY_PRODUCTION = os.environ.get("STRIPE_SECRET_KEY_PRODUCTION", "")
    STRIPE_PUBLISHABLE_KEY = os.environ.get("STRIPE_PUBLISHABLE_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")

    # OpenAI (cover letters)
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")

    # Resend
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
    SUPPORT_FROM_EMAIL = os.environ.get("SUPPORT_FROM_EMAIL", "Resume Alchemist Support <onboarding@resend.dev>")
    SUPPORT_INBOX = os.environ.get("SUPPORT_INBOX", "resume-alchemist@gmail.com")

    # External analysis workflow
    MAKE_WEBHOOK_URL = os.environ.get("MAKE_WEBHOOK_URL", "")
    ANALYSIS_CALLBACK_SECRET = os.environ.get("ANALYSIS_CALLBACK_SECRET", "")

    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "https://resumealchemist.qwizai.com").rstrip("/")

    # i18n
    BABEL_DEFAULT_LOCALE = os.environ.get("ALCHEMIST_DEFAULT_LOCALE", "en")
    BABEL_TRANSLATION_DIRECTORIES = os.environ.get("BABEL_TRANSLATION_DIRECTORIES", "translations")

    # Upload retry policy: 1 try + 3 retries, fixed delay
    UPLOAD_MAX_ATTEMPTS = int(os.environ.get("UPLOAD_MAX_ATTEMPTS", "4"))
    UPLOAD_RETRY_DELAY = _float("UPLOAD_RETRY_DELAY", "1.0")

    # CORS origins if you need them (comma-separated)
    CORS_ORIGINS = [s.strip() for s in os.environ.get("CORS_ORIGINS", "").split(",") if s.strip()]

class DevConfig(Config):
    DEBUG = True
    SESSION_COOKIE_SECURE = False

class ProdConfig(Config):
    DEBUG = False

class TestConfig(Config):
    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-key"
    SESSION_COOKIE_SECURE = False
    UPLOAD_RETRY_DELAY = 0.0
    MAKE_WEBHOOK_URL = "https://hook.example.test/analysis"
    ANALYSIS_CALLBACK_SECRET = "callback-secret"
    OPENAI_API_KEY = ""

def get_config(env: str | None = None):
    """Resolve config by env string or environment variables."""
    env = (env or os.environ.get("ALCHEMIST_ENV") or os.environ.get("FLASK_ENV") or "production").lower()
    if env in ("dev", "development"):
        return DevConfig
    if env in ("test", "testing"):
        return TestConfig
    return ProdConfig
