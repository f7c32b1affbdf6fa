# alchemist/services/cover_letters.py
from __future__ import annotations
import json, logging

from openai import OpenAIError

from ..errors import ExternalServiceError, NotFoundError, ValidationError
from .analysis import first_row

logger = logging.getLogger(__name__)

COVER_LETTER_STATUS = "cover_letter"
DEFAULT_COMPANY = "the company"

SYSTEM_PROMPT = (
    "You are a professional cover letter writer. Generate compelling, personalized cover letters "
    "that highlight the candidate's strengths and align with job requirements."
)


def build_prompt(resume_content, job_description, company_name: str | None = None) -> str:
    company = company_name or DEFAULT_COMPANY
    return f"""You are an AI cover letter assistant, help me craft a compelling cover letter for {company}.

Resume:
{json.dumps(resume_content, ensure_ascii=False, indent=2)}

Job description:
{json.dumps(job_description, ensure_ascii=False, indent=2)}

Instructions:
1. Write between 300 and 400 words.
2. Write in the same language as the job description.
3. Open with a strong hook that names the role and {company}.
4. Connect the candidate's most relevant experience to the job's key requirements.
5. Use concrete achievements from the resume; do not invent facts.
6. Show genuine interest in {company} and its mission.
7. Keep a professional, confident tone.
8. Close with a clear call to action.
9. Return only the letter text, without a subject line or placeholders."""


def generate_cover_letter(openai_client, supabase_admin, analysis_id: str, model: str = "gpt-4o-mini",
                          user_id: str | None = None) -> str:
    """
    Draft a cover letter for an analysis from its refined resume and job posting,
    store it on the job_apply row and return the text.
    """
    if not analysis_id:
        raise ValidationError("analysisId is required")
    if openai_client is None:
        raise ExternalServiceError("OpenAI API key not configured")

    analysis = first_row(supabase_admin.table("resume_analyses").select("*").eq("id", analysis_id).limit(1).execute())
    if not analysis:
        raise NotFoundError("Analysis not found")
    if user_id and analysis.get("user_id") and str(analysis["user_id"]) != str(user_id):
        raise NotFoundError("Analysis not found")

    job = {}
    if analysis.get("job_id"):
        job = first_row(supabase_admin.table("jobs").select("*").eq("id", analysis["job_id"]).limit(1).execute()) or {}
    if not job.get("job_description"):
        raise NotFoundError("Job description not found")

    editor = first_row(supabase_admin.table("resume_editors").select("content").eq("analysis_id", analysis_id).limit(1).execute())
    if not editor or not editor.get("content"):
        raise NotFoundError("Resume content not found")

    prompt = build_prompt(editor["content"], job["job_description"], job.get("company_name"))
    try:
        resp = openai_client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.7,
            max_tokens=1000,
        )
    except OpenAIError as e:
        raise ExternalServiceError("Failed to generate cover letter", cause=e) from e

    letter = (resp.choices[0].message.content or "").strip()
    if not letter:
        raise ExternalServiceError("Failed to generate cover letter")

    existing = first_row(supabase_admin.table("job_apply").select("id").eq("analysis_id", analysis_id).limit(1).execute())
    patch = {"cover_letter": letter, "status": COVER_LETTER_STATUS}
    if existing:
        supabase_admin.table("job_apply").update(patch).eq("id", existing["id"]).execute()
    else:
        supabase_admin.table("job_apply").insert({"analysis_id": analysis_id, **patch}).execute()

    logger.info("cover letter stored for analysis %s (%d chars)", analysis_id, len(letter))
    return letter
