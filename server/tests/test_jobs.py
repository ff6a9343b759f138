from datetime import datetime, timedelta

from conftest import FakeRasterizer
from pdfdeck.models import JobStatus
from pdfdeck.pipeline import ConversionPipeline
from server.jobs import Job, JobRegistry
from server.models import ConversionSettings


def _job(tmp_path, job_id="job-1", owner_id="user-1"):
    pdf_path = tmp_path / f"{job_id}.pdf"
    pdf_path.write_bytes(b"%PDF-1.4")
    output_dir = tmp_path / "output" / job_id
    output_dir.mkdir(parents=True)
    (output_dir / "deck.pptx").write_bytes(b"PK")
    pipeline = ConversionPipeline(rasterizer=FakeRasterizer(2), require_credentials=False)
    return Job(
        id=job_id,
        owner_id=owner_id,
        filename="deck.pdf",
        pdf_path=pdf_path,
        settings=ConversionSettings(),
        pipeline=pipeline,
        output_dir=output_dir,
    )


def test_get_is_owner_scoped(tmp_path):
    registry = JobRegistry()
    registry.add(_job(tmp_path))

    assert registry.get("job-1", owner_id="user-1") is not None
    assert registry.get("job-1", owner_id="user-2") is None
    assert registry.get("missing") is None


def test_release_forgets_job_and_deletes_files(tmp_path):
    registry = JobRegistry()
    job = registry.add(_job(tmp_path))
    job.pipeline.load(job.pdf_path)

    assert registry.release("job-1") is job

    assert "job-1" not in registry
    assert not job.pdf_path.exists()
    assert not job.output_dir.exists()
    assert job.pipeline.status == JobStatus.IDLE
    assert registry.release("job-1") is None


def test_expire_releases_idle_jobs_past_ttl(tmp_path):
    registry = JobRegistry(ttl_minutes=30)
    stale = registry.add(_job(tmp_path, "stale"))
    registry.add(_job(tmp_path, "fresh"))
    stale.last_seen = datetime.utcnow() - timedelta(minutes=31)

    assert registry.expire() == ["stale"]

    assert len(registry) == 1
    assert "fresh" in registry
    assert not stale.pdf_path.exists()


def test_expire_keeps_busy_jobs(tmp_path):
    registry = JobRegistry(ttl_minutes=30)
    job = registry.add(_job(tmp_path))
    job.pipeline.status = JobStatus.ASSEMBLING

    assert registry.expire(now=datetime.utcnow() + timedelta(hours=5)) == []
    assert "job-1" in registry
