from __future__ import annotations
from flask import Flask


def register_routes(app: Flask) -> None:
    from .locale import locale_bp
    from .functions import functions_bp
    from .resumes import resumes_bp
    from .auth_session import auth_session_bp

    app.register_blueprint(locale_bp)
    app.register_blueprint(functions_bp)
    app.register_blueprint(resumes_bp)
    app.register_blueprint(auth_session_bp)
