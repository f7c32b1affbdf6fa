# alchemist/routes/resumes.py
from __future__ import annotations
import json, queue

from flask import Blueprint, Response, current_app, flash, jsonify, request, stream_with_context
from flask_login import current_user

from ..errors import NotFoundError, ValidationError
from ..security.auth import api_login_required
from ..services.analysis import UUID_PAT, first_row
from ..services.notifications import Notice, Notifier
from ..services.realtime import RealtimeStatusWatcher
from ..services.retry import RetryPolicy
from ..services.uploads import ResumeFile, ResumeUploadCoordinator

resumes_bp = Blueprint("resumes", __name__, url_prefix="/api")

# Seconds between SSE keep-alive comments while waiting on the worker
KEEPALIVE_SECONDS = 15.0


def _flash_notice(notice: Notice) -> None:
    flash(f"{notice.title}: {notice.description}", "error" if notice.variant == "destructive" else "info")


def _coordinator(notifier: Notifier) -> ResumeUploadCoordinator:
    cfg = current_app.config
    policy = RetryPolicy(max_attempts=cfg["UPLOAD_MAX_ATTEMPTS"], delay=cfg["UPLOAD_RETRY_DELAY"])
    return ResumeUploadCoordinator(cfg["SUPABASE_ADMIN"], notifier, policy=policy, bucket=cfg["RESUME_BUCKET"])


@resumes_bp.post("/resumes")
@api_login_required
def upload_resume():
    f = request.files.get("file")
    if not f or not f.filename:
        raise ValidationError("No file uploaded")

    notifier = Notifier(sink=_flash_notice)
    upload = ResumeFile(name=f.filename, mime_type=f.mimetype or "", data=f.read())
    result = _coordinator(notifier).upload(upload, user_id=current_user.id)
    body = result.to_dict()
    body["notice"] = {"title": notifier.last.title, "description": notifier.last.description}
    return jsonify(body), 201


def _load_analysis(analysis_id: str) -> dict:
    if not UUID_PAT.match(analysis_id):
        raise ValidationError("Invalid analysis id")
    r = current_app.config["SUPABASE_ADMIN"].table("resume_analyses").select("*").eq("id", analysis_id).limit(1).execute()
    row = first_row(r)
    if not row or str(row.get("user_id")) != str(current_user.id):
        raise NotFoundError("Analysis not found")
    return row


@resumes_bp.get("/analyses/<analysis_id>")
@api_login_required
def get_analysis(analysis_id: str):
    return jsonify(_load_analysis(analysis_id))


def _sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _outcome(row: dict):
    """(event, payload) once the analysis finished, else None."""
    if row.get("google_doc_url"):
        return "ready", {"google_doc_url": row["google_doc_url"]}
    if row.get("error"):
        return "error", {"error": row["error"]}
    return None


@resumes_bp.get("/analyses/<analysis_id>/events")
@api_login_required
def analysis_events(analysis_id: str):
    row = _load_analysis(analysis_id)
    feed = current_app.config["CHANGE_FEED"]
    supabase = current_app.config["SUPABASE_ADMIN"]

    def generate():
        finished = _outcome(row)
        if finished:
            yield _sse(*finished)
            return

        events: queue.Queue = queue.Queue()
        with RealtimeStatusWatcher(
            feed, analysis_id,
            on_ready=lambda url: events.put(("ready", {"google_doc_url": url})),
            on_error=lambda err: events.put(("error", {"error": err})),
        ):
            # a write-back may have landed before the watcher subscribed
            latest = first_row(supabase.table("resume_analyses").select("*").eq("id", analysis_id).limit(1).execute())
            finished = _outcome(latest or {})
            if finished:
                yield _sse(*finished)
                return
            yield _sse("pending", {"analysisId": analysis_id})
            while True:
                try:
                    name, payload = events.get(timeout=KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse(name, payload)
                return

    return Response(stream_with_context(generate()), mimetype="text/event-stream",
                    headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})
