"""
Main FastAPI application.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from sqlalchemy.orm import Session as DBSession

from pdfdeck.errors import (
    AccessDeniedError,
    ConfigurationRequiredError,
    CredentialError,
    InvalidTransitionError,
    NoSlidesSelectedError,
    PDFDeckError,
    UnknownPageError,
)
from pdfdeck.extractors import PDFRasterizer
from pdfdeck.models import JobStatus
from pdfdeck.pipeline import ConversionPipeline
from pdfdeck.prompt import MODE_POLICIES, GeminiTransport, SceneAnalyzer, policy_for
from pdfdeck.security import AccessPolicy, Session, credentials
from server.auth import current_session, get_policy, websocket_session
from server.db import get_db, init_db
from server.jobs import Job, JobRegistry
from server.models import (
    AllowedUserRequest,
    AllowedUserResponse,
    BulkSlideUpdateRequest,
    ConversionSettings,
    JobResponse,
    ModeResponse,
    RegisterResponse,
    SettingsRequest,
    SettingsResponse,
    SlideItemResponse,
    SlideUpdateRequest,
)
from server.store import AllowListStore, CredentialStore, UserStore
from server.tasks import convert_task, decompose_task, make_progress_publisher
from server.websocket_manager import ConnectionManager

load_dotenv()

UPLOAD_DIR = Path("server/uploads")
OUTPUT_DIR = Path("server/output")


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    app.state.loop = asyncio.get_running_loop()
    yield
    # Shutdown
    app.state.loop = None

app = FastAPI(
    title="PDFDeck API",
    description="Convert slide PDFs to editable PPTX",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# WebSocket connection manager
manager = ConnectionManager()

# Conversion jobs, in memory
registry = JobRegistry()


@app.exception_handler(PDFDeckError)
async def pdfdeck_error_handler(request: Request, exc: PDFDeckError):
    if isinstance(exc, AccessDeniedError):
        status_code = exc.status_code
    elif isinstance(exc, InvalidTransitionError):
        status_code = 409
    elif isinstance(exc, (NoSlidesSelectedError, ConfigurationRequiredError, CredentialError)):
        status_code = 400
    elif isinstance(exc, UnknownPageError):
        status_code = 404
    else:
        status_code = 500
    print(f"[API] {request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def _event_loop(request: Request) -> Optional[asyncio.AbstractEventLoop]:
    return getattr(request.app.state, "loop", None)


def _require_session(
    session: Optional[Session] = Depends(current_session),
    policy: AccessPolicy = Depends(get_policy),
) -> Session:
    return policy.require_session(session)


def _require_admin(
    session: Optional[Session] = Depends(current_session),
    policy: AccessPolicy = Depends(get_policy),
) -> Session:
    return policy.require_admin(session)


def _get_job(job_id: str, session: Session) -> Job:
    job = registry.get(job_id, owner_id=session.user_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def _job_response(job: Job) -> JobResponse:
    pipeline = job.pipeline
    return JobResponse(
        job_id=job.id,
        filename=job.filename,
        status=pipeline.status.value,
        progress=pipeline.progress,
        message=pipeline.message,
        error=pipeline.error,
        created_at=job.created_at.isoformat(),
        slides=[
            SlideItemResponse(
                page_number=item.page_number,
                mode=item.mode,
                enabled=item.enabled,
                width_px=item.preview.width_px,
                height_px=item.preview.height_px,
            )
            for item in pipeline.items
        ],
        outcomes=pipeline.outcomes,
        failed_pages=pipeline.failed_pages,
        artifacts={kind: path.name for kind, path in pipeline.artifacts.items()},
    )


# --- API Endpoints ---

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "PDFDeck API is running"}


@app.get("/api/modes", response_model=List[ModeResponse])
def list_modes():
    """Extraction modes with their labels, in picker order."""
    return [
        ModeResponse(
            mode=mode,
            label=policy.label,
            description=policy.description,
            uses_model=policy.uses_model,
        )
        for mode, policy in MODE_POLICIES.items()
    ]


# --- Users ---

@app.post("/api/register", response_model=RegisterResponse)
def register(
    session: Session = Depends(_require_session),
    policy: AccessPolicy = Depends(get_policy),
    db: DBSession = Depends(get_db),
):
    """Register the caller if their email is on the allow-list."""
    if not policy.can_register(session.email):
        raise AccessDeniedError("This email is not allowed to register", status_code=403)

    user = UserStore(db).register(session.user_id, session.email)
    print(f"[API] Registered user {user.id}")
    return RegisterResponse(user_id=user.id, email=user.email, is_admin=policy.is_admin(session))


@app.get("/api/admin/users", response_model=List[AllowedUserResponse])
def list_allowed_users(
    session: Session = Depends(_require_admin),
    db: DBSession = Depends(get_db),
):
    """List the registration allow-list (admins only)."""
    return [
        AllowedUserResponse(email=e.email, added_by=e.added_by, created_at=e.created_at.isoformat())
        for e in AllowListStore(db).list()
    ]


@app.post("/api/admin/users", response_model=AllowedUserResponse, status_code=201)
def add_allowed_user(
    request: AllowedUserRequest,
    session: Session = Depends(_require_admin),
    db: DBSession = Depends(get_db),
):
    """Add an email to the allow-list (admins only)."""
    entry = AllowListStore(db).add(request.email, added_by=session.email)
    return AllowedUserResponse(
        email=entry.email, added_by=entry.added_by, created_at=entry.created_at.isoformat()
    )


@app.delete("/api/admin/users")
def remove_allowed_user(
    email: str,
    session: Session = Depends(_require_admin),
    db: DBSession = Depends(get_db),
):
    """Remove an email from the allow-list (admins only)."""
    if not AllowListStore(db).remove(email):
        raise HTTPException(status_code=404, detail="Email not on the allow-list")
    return {"message": "Removed"}


# --- Settings ---

@app.get("/api/settings", response_model=SettingsResponse)
def get_settings(
    session: Session = Depends(_require_session),
    db: DBSession = Depends(get_db),
):
    """Whether the caller has stored an API key. The key itself is never returned."""
    return SettingsResponse(has_key=CredentialStore(db).has_key(session.user_id))


@app.post("/api/settings", response_model=SettingsResponse)
def update_settings(
    settings: SettingsRequest,
    session: Session = Depends(_require_session),
    db: DBSession = Depends(get_db),
):
    """Encrypt and store the caller's API key."""
    try:
        ciphertext = credentials.encrypt(settings.api_key.strip())
    except ConfigurationRequiredError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    CredentialStore(db).save_encrypted_key(session.user_id, ciphertext)
    return SettingsResponse(has_key=True)


# --- Jobs ---

@app.post("/api/jobs", response_model=JobResponse, status_code=202)
async def create_job(
    request: Request,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    generate_audit: bool = Form(True),
    save_intermediate: bool = Form(True),
    max_pages: int = Form(100, ge=1, le=100),
    session: Session = Depends(_require_session),
    db: DBSession = Depends(get_db),
):
    """
    Upload a PDF and start rendering its page previews.

    Returns immediately; follow progress on /ws/{job_id} or by polling.
    """
    if not (file.filename or "").lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")

    if not CredentialStore(db).has_key(session.user_id):
        raise ConfigurationRequiredError("Save a Gemini API key in settings first")

    settings = ConversionSettings(
        generate_audit=generate_audit,
        save_intermediate=save_intermediate,
        max_pages=max_pages,
    )

    registry.expire()

    job_id = registry.new_id()
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    upload_path = UPLOAD_DIR / f"{job_id}.pdf"

    content = await file.read()
    with open(upload_path, "wb") as f:
        f.write(content)

    pipeline = ConversionPipeline(
        rasterizer=PDFRasterizer(max_pages=settings.max_pages),
        require_credentials=False,
        generate_audit=settings.generate_audit,
        save_intermediate=settings.save_intermediate,
        progress_callback=make_progress_publisher(job_id, manager, _event_loop(request)),
    )
    job = registry.add(
        Job(
            id=job_id,
            owner_id=session.user_id,
            filename=file.filename,
            pdf_path=upload_path,
            settings=settings,
            pipeline=pipeline,
            output_dir=OUTPUT_DIR / job_id,
        )
    )
    print(f"[API] Created job {job_id} for {file.filename} ({len(content)} bytes)")

    background_tasks.add_task(decompose_task, job=job, manager=manager, loop=_event_loop(request))
    return _job_response(job)


@app.get("/api/jobs/{job_id}", response_model=JobResponse)
def get_job_status(job_id: str, session: Session = Depends(_require_session)):
    """Get job status, progress and per-page settings."""
    return _job_response(_get_job(job_id, session))


@app.get("/api/jobs/{job_id}/slides/{page_number}/preview")
def get_slide_preview(job_id: str, page_number: int, session: Session = Depends(_require_session)):
    """The rendered preview image of one page."""
    job = _get_job(job_id, session)
    for item in job.pipeline.items:
        if item.page_number == page_number:
            return Response(content=item.preview.data, media_type=item.preview.mime_type)
    raise UnknownPageError(f"No page {page_number} in this job")


@app.patch("/api/jobs/{job_id}/slides/{page_number}", response_model=JobResponse)
def update_slide(
    job_id: str,
    page_number: int,
    update: SlideUpdateRequest,
    session: Session = Depends(_require_session),
):
    """Enable/disable one page or change its mode."""
    job = _get_job(job_id, session)
    if update.enabled is not None:
        job.pipeline.set_enabled(page_number, update.enabled)
    if update.mode is not None:
        job.pipeline.set_mode(page_number, update.mode)
    return _job_response(job)


@app.post("/api/jobs/{job_id}/slides", response_model=JobResponse)
def update_all_slides(
    job_id: str,
    update: BulkSlideUpdateRequest,
    session: Session = Depends(_require_session),
):
    """Enable/disable every page, and/or set the mode of every enabled page."""
    job = _get_job(job_id, session)
    if update.enabled is not None:
        job.pipeline.set_all_enabled(update.enabled)
    if update.mode is not None:
        job.pipeline.set_mode_for_enabled(update.mode)
    return _job_response(job)


@app.post("/api/jobs/{job_id}/convert", response_model=JobResponse, status_code=202)
def start_conversion(
    job_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(_require_session),
    db: DBSession = Depends(get_db),
):
    """
    Start assembling the deck from the enabled pages.

    Kicks off a background task and returns immediately.
    """
    job = _get_job(job_id, session)
    pipeline = job.pipeline

    if pipeline.status != JobStatus.PREVIEWING:
        raise InvalidTransitionError(f"Job is {pipeline.status.value}, not ready to convert")
    enabled = pipeline.enabled_items()
    if not enabled:
        raise NoSlidesSelectedError("Select at least one slide to convert")

    if any(policy_for(item.mode).uses_model for item in enabled):
        # Read and decrypt on every run; the key may have changed since upload
        ciphertext = CredentialStore(db).get_encrypted_key(session.user_id)
        if ciphertext is None:
            raise ConfigurationRequiredError("Save a Gemini API key in settings first")
        try:
            api_key = credentials.decrypt(ciphertext)
        except ConfigurationRequiredError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        pipeline.analyzer = SceneAnalyzer(GeminiTransport(api_key=api_key))

    output_path = job.output_dir / Path(job.filename).stem
    output_path.parent.mkdir(parents=True, exist_ok=True)

    background_tasks.add_task(
        convert_task, job=job, output_path=output_path, manager=manager, loop=_event_loop(request)
    )
    print(f"[API] Queued conversion of {len(enabled)} slides for job {job.id}")
    return _job_response(job)


@app.post("/api/jobs/{job_id}/reset", response_model=JobResponse)
def reset_job(job_id: str, session: Session = Depends(_require_session)):
    """
    Abandon the job. Work in flight is discarded.

    The job is forgotten and its files deleted; the response shows it back in IDLE.
    """
    job = _get_job(job_id, session)
    registry.release(job.id)
    return _job_response(job)


@app.get("/api/jobs/{job_id}/download")
def download_pptx(
    job_id: str,
    background_tasks: BackgroundTasks,
    session: Session = Depends(_require_session),
):
    """Download the generated PPTX. The job and its files are released once it is sent."""
    job = _get_job(job_id, session)
    pipeline = job.pipeline

    if pipeline.status != JobStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Job not completed")

    if not pipeline.output_path or not pipeline.output_path.exists():
        raise HTTPException(status_code=404, detail="PPTX file not found")

    background_tasks.add_task(registry.release, job.id)
    return FileResponse(
        pipeline.output_path,
        media_type="application/vnd.openxmlformats-officedocument.presentationml.presentation",
        filename=f"{Path(job.filename).stem}.pptx"
    )


# --- WebSocket for real-time progress ---

@app.websocket("/ws/{job_id}")
async def websocket_endpoint(websocket: WebSocket, job_id: str):
    """
    WebSocket endpoint for real-time job progress updates.

    Only the job's owner may subscribe; anyone else is refused before the handshake completes.
    """
    session = websocket_session(websocket)
    if session is None or registry.get(job_id, owner_id=session.user_id) is None:
        print(f"[API] Refused progress subscription for job {job_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(job_id, websocket)

    try:
        while True:
            # Keep connection alive and receive any client messages
            data = await websocket.receive_text()

            # Echo back for heartbeat
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        manager.disconnect(job_id, websocket)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
