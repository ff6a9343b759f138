"""
In-memory registry of conversion jobs.

A job wraps one ConversionPipeline plus the files it owns on disk (the
uploaded PDF and its output directory). Nothing about a job is persisted:
it ends when the user resets it, after its deck is downloaded, or when it
has been left alone past the registry's time-to-live.
"""

import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from pdfdeck.models import JobStatus
from pdfdeck.pipeline import ConversionPipeline
from server.models import ConversionSettings

# Jobs in these states have a background task running
BUSY_STATES = (JobStatus.DECOMPOSING, JobStatus.ASSEMBLING)


@dataclass
class Job:
    id: str
    owner_id: str
    filename: str
    pdf_path: Path
    settings: ConversionSettings
    pipeline: ConversionPipeline
    output_dir: Optional[Path] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_seen: datetime = field(default_factory=datetime.utcnow)

    def delete_files(self) -> None:
        """Remove the upload and everything written for this job."""
        self.pdf_path.unlink(missing_ok=True)
        if self.output_dir is not None:
            shutil.rmtree(self.output_dir, ignore_errors=True)


class JobRegistry:
    """Jobs by id. A job is only visible to the user who created it."""

    def __init__(self, ttl_minutes: int = 120):
        self.ttl = timedelta(minutes=ttl_minutes)
        self._jobs: Dict[str, Job] = {}

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def add(self, job: Job) -> Job:
        self._jobs[job.id] = job
        return job

    def get(self, job_id: str, owner_id: Optional[str] = None) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None or (owner_id is not None and job.owner_id != owner_id):
            return None
        job.last_seen = datetime.utcnow()
        return job

    def release(self, job_id: str) -> Optional[Job]:
        """Forget a job and delete its files. The pipeline is reset so late results are dropped."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            return None
        job.pipeline.reset()
        job.delete_files()
        print(f"[JOBS] Released job {job_id}")
        return job

    def expire(self, now: Optional[datetime] = None) -> List[str]:
        """Release idle jobs untouched for longer than the time-to-live."""
        now = now or datetime.utcnow()
        stale = [
            job.id
            for job in self._jobs.values()
            if now - job.last_seen > self.ttl and job.pipeline.status not in BUSY_STATES
        ]
        for job_id in stale:
            self.release(job_id)
        return stale

    def clear(self) -> None:
        self._jobs.clear()

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)
