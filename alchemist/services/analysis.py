# alchemist/services/analysis.py
from __future__ import annotations
import logging, re
from typing import Optional

import requests

from ..errors import ExternalServiceError, NotFoundError, ValidationError
from .realtime import UPDATE, ChangeFeed

logger = logging.getLogger(__name__)

UUID_PAT = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)
RESULT_FIELDS = ("analysis_data", "google_doc_url")
PENDING = "pending"
PROCESSED = "processed"
FAILED = "failed"


def first_row(resp) -> Optional[dict]:
    data = getattr(resp, "data", None)
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


def start_analysis(client, resume_id: str, job_url: str, webhook_url: str, bucket: str = "resumes", http=requests) -> str:
    """
    Record a pending analysis for a stored resume and hand it to the workflow webhook.
    Returns the new analysis id. Results arrive later through record_analysis_result().
    """
    resume_id = (resume_id or "").strip()
    job_url = (job_url or "").strip()
    if not resume_id or not job_url:
        raise ValidationError("Both resumeId and jobUrl are required")
    if not UUID_PAT.match(resume_id):
        raise ValidationError(f"Invalid resumeId format: {resume_id}")
    if not webhook_url:
        raise ExternalServiceError("Analysis webhook URL not configured")

    resume = first_row(client.table("resumes").select("*").eq("id", resume_id).limit(1).execute())
    if not resume:
        raise NotFoundError("Resume not found")

    job = first_row(client.table("jobs").insert({"user_id": resume.get("user_id")}).execute()) or {}
    resume_url = client.storage.from_(bucket).get_public_url(resume["file_path"])

    analysis = first_row(client.table("resume_analyses").insert({
        "resume_id": resume_id,
        "job_url": job_url,
        "user_id": resume.get("user_id"),
        "job_id": job.get("id"),
        "status": PENDING,
    }).execute())
    if not analysis:
        raise ExternalServiceError("Could not create analysis record")
    analysis_id = str(analysis["id"])

    payload = {
        "analysisId": analysis_id,
        "resumeUrl": resume_url,
        "jobUrl": job_url,
        "fileName": resume.get("file_name"),
    }
    try:
        r = http.post(webhook_url, json=payload, timeout=30)
    except requests.RequestException as e:
        raise ExternalServiceError("Failed to send data to analysis webhook", cause=e) from e
    if r.status_code >= 300:
        logger.error("analysis webhook failed: %s %s", r.status_code, r.text)
        raise ExternalServiceError("Failed to send data to analysis webhook")

    logger.info("analysis %s started for resume %s", analysis_id, resume_id)
    return analysis_id


def record_analysis_result(client, feed: ChangeFeed, analysis_id: str, patch: dict) -> dict:
    """Apply the worker's write-back and fan it out to realtime watchers."""
    if not analysis_id or not UUID_PAT.match(str(analysis_id)):
        raise ValidationError("Invalid analysisId")

    allowed = {k: patch[k] for k in (*RESULT_FIELDS, "status", "error") if k in patch}
    if not allowed:
        raise ValidationError("Nothing to update")
    if "status" not in allowed:
        if allowed.get("error"):
            allowed["status"] = FAILED
        elif any(allowed.get(k) for k in RESULT_FIELDS):
            allowed["status"] = PROCESSED

    row = first_row(client.table("resume_analyses").update(allowed).eq("id", analysis_id).execute())
    if not row:
        raise NotFoundError("Analysis not found")

    delivered = feed.publish("resume_analyses", UPDATE, row)
    logger.info("analysis %s updated (%s); %d watcher(s) notified", analysis_id, row.get("status"), delivered)
    return row
