"""
Background tasks for PDF conversion.

These run in FastAPI's worker threads. The pipeline itself tracks status
and progress; the tasks only start it and report the result.
"""

import asyncio
from pathlib import Path
from typing import Optional

from pdfdeck.errors import PDFDeckError
from server.jobs import Job
from server.websocket_manager import ConnectionManager


def make_progress_publisher(
    job_id: str,
    manager: ConnectionManager,
    loop: Optional[asyncio.AbstractEventLoop],
):
    """Progress callback that forwards pipeline updates to WebSocket subscribers."""

    def publish(progress: float, message: str) -> None:
        manager.publish(job_id, {"progress": progress, "message": message}, loop)

    return publish


def _publish_status(job: Job, manager: ConnectionManager, loop) -> None:
    pipeline = job.pipeline
    manager.publish(
        job.id,
        {
            "status": pipeline.status.value,
            "progress": pipeline.progress,
            "message": pipeline.message,
            "error": pipeline.error,
            "failed_pages": pipeline.failed_pages,
        },
        loop,
    )


def decompose_task(job: Job, manager: ConnectionManager, loop=None):
    """Render the uploaded PDF into slide previews."""
    print(f"\n[TASK] Rendering previews for job_id={job.id}, pdf_path={job.pdf_path}")

    try:
        items = job.pipeline.load(job.pdf_path)
        print(f"[TASK] ✓ {len(items)} previews ready for job {job.id}")
    except PDFDeckError as e:
        # The pipeline has already moved to ERROR and kept the message
        print(f"[TASK] ✗ Rendering FAILED for job {job.id}: {e}")

    _publish_status(job, manager, loop)


def convert_task(job: Job, output_path: Path, manager: ConnectionManager, loop=None):
    """Analyze the enabled slides and write the deck."""
    print(f"\n[TASK] Starting conversion for job_id={job.id}")

    try:
        result = job.pipeline.convert(output_path)
        if result is None:
            print(f"[TASK] Job {job.id} was reset during conversion, result dropped")
            return
        print(f"[TASK] ✓ Conversion completed successfully! PPTX: {result}")
    except PDFDeckError as e:
        print(f"[TASK] ✗ Conversion FAILED for job {job.id}: {e}")

    _publish_status(job, manager, loop)
