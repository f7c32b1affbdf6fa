# alchemist/services/uploads.py
from __future__ import annotations
import logging, time, uuid
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import UploadError, ValidationError
from .notifications import Notifier
from .retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 5_000_000  # bytes
ALLOWED_MIME_TYPES = ("application/pdf",)


@dataclass(frozen=True)
class ResumeFile:
    name: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.name.rsplit(".", 1)[-1].lower() if "." in self.name else "pdf"


@dataclass(frozen=True)
class UploadResult:
    file_path: str
    public_url: str
    record_id: str

    def to_dict(self) -> dict:
        return {"filePath": self.file_path, "publicUrl": self.public_url, "recordId": self.record_id}


def validate_resume_file(file: ResumeFile) -> None:
    if file.size > MAX_FILE_SIZE:
        raise ValidationError("Please upload a PDF file smaller than 5MB")
    if file.mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError("Please upload a PDF file")


class ResumeUploadCoordinator:
    """
    validate -> storage write (retried) -> public URL -> `resumes` row.

    Nothing is cleaned up if the final write fails: the storage key is only
    ever referenced through a successfully inserted row.
    """

    def __init__(
        self,
        client,
        notifier: Optional[Notifier] = None,
        policy: RetryPolicy = RetryPolicy(),
        bucket: str = "resumes",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.notifier = notifier or Notifier()
        self.policy = policy
        self.bucket = bucket
        self._sleep = sleep

    def upload(self, file: ResumeFile, user_id: Optional[str] = None) -> UploadResult:
        try:
            validate_resume_file(file)
        except ValidationError as e:
            title = "File too large" if file.size > MAX_FILE_SIZE else "Invalid file type"
            self.notifier.error(title, e.message)
            raise

        file_path = f"{uuid.uuid4()}.{file.extension}"
        bucket = self.client.storage.from_(self.bucket)

        def write(attempt: int):
            return bucket.upload(file_path, file.data, {"content-type": file.mime_type})

        try:
            run_with_retry(write, self.policy, sleep=self._sleep, label=f"upload {file_path}")
            public_url = bucket.get_public_url(file_path)
            row = {
                "file_path": file_path,
                "file_name": file.name,
                "mime_type": file.mime_type,
                "file_size": file.size,
            }
            if user_id:
                row["user_id"] = user_id
            resp = self.client.table("resumes").insert(row).execute()
            data = getattr(resp, "data", None) or []
            if not data:
                raise RuntimeError("resumes insert returned no row")
            record_id = str(data[0]["id"])
        except Exception as e:
            logger.exception("resume upload failed for %s", file.name)
            self.notifier.error("Upload Failed", "Failed to upload resume. Please try again.")
            raise UploadError("Failed to upload resume. Please try again.", cause=e) from e

        self.notifier.notify("Upload complete", f"{file.name} is ready for analysis.")
        logger.info("uploaded resume %s as %s (record %s)", file.name, file_path, record_id)
        return UploadResult(file_path=file_path, public_url=public_url, record_id=record_id)
