import os
import uuid
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from .cards import CardSlot, CustomCard, decode_data_url
from .decklist import parse_decklist
from .engine import SheetEngine
from .pages import layout_preview
from .settings import ExportSettings

OUTPUT_ROOT = os.path.join(os.getcwd(), "Output")

app = FastAPI()

# In-memory job store
jobs = {}


class JobStatus:
    def __init__(self):
        self.status = "pending"
        self.messages = []
        self.progress = 0
        self.result_files = []
        self.diagnostics = []

    def update(self, message):
        self.messages.append(message)
        # Simple heuristic progress update
        self.progress = min(99, self.progress + 2)

    def complete(self, files, diagnostics):
        self.status = "completed"
        self.progress = 100
        self.result_files = files
        self.diagnostics = diagnostics

    def fail(self, error):
        self.status = "failed"
        self.messages.append(f"Error: {str(error)}")


class CustomCardRequest(BaseModel):
    name: str
    image: Optional[str] = None
    back_image: Optional[str] = None
    is_double_faced: bool = False
    back_face_name: Optional[str] = None
    border: bool = True
    back_border: bool = True


class ExportRequest(BaseModel):
    decklist: str = ""
    custom_cards: List[CustomCardRequest] = Field(default_factory=list)
    universal_back: Optional[str] = None
    border: bool = True
    bundle_pdf: bool = False
    settings: ExportSettings = Field(default_factory=ExportSettings)


def _decode_upload(value, what):
    if value is None:
        return None
    try:
        return decode_data_url(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"{what}: {e}")


def build_entries(request: ExportRequest):
    entries = parse_decklist(request.decklist, border=request.border)
    for card in request.custom_cards:
        if card.is_double_faced and card.image and not card.back_image:
            raise HTTPException(
                status_code=400,
                detail=f"{card.name}: upload both front and back images for double-sided cards",
            )
        entries.append(CustomCard(
            name=card.name,
            front_image=_decode_upload(card.image, card.name),
            back_image=_decode_upload(card.back_image, f"{card.name} back"),
            is_double_faced=card.is_double_faced,
            back_face_name=card.back_face_name,
            border=card.border,
            back_border=card.back_border,
        ))
    if not entries:
        raise HTTPException(status_code=400, detail="No cards in request")
    return entries


def run_engine_task(job_id, entries, universal_back, request: ExportRequest):
    job = jobs[job_id]
    job.status = "running"

    engine = SheetEngine(progress_callback=job.update, settings=request.settings)

    try:
        output_dir = os.path.join(OUTPUT_ROOT, job_id)
        files = engine.run_job(
            entries,
            output_dir=output_dir,
            universal_back=universal_back,
            bundle_pdf=request.bundle_pdf,
        )
        job.complete(files, [d.as_dict() for d in engine.diagnostics])
    except Exception as e:
        job.fail(e)


@app.post("/api/export")
async def export_sheets(request: ExportRequest, background_tasks: BackgroundTasks):
    entries = build_entries(request)
    universal_back = _decode_upload(request.universal_back, "universal back")
    job_id = str(uuid.uuid4())
    jobs[job_id] = JobStatus()
    background_tasks.add_task(run_engine_task, job_id, entries, universal_back, request)
    return {"job_id": job_id}


@app.post("/api/preview")
async def preview_sheets(request: ExportRequest):
    entries = build_entries(request)
    slots = [CardSlot(display_name=entry.name, front_image=None) for entry in entries]
    try:
        pages = layout_preview(slots, page_size=request.settings.page_size)
    except (ValueError, IndexError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"sheets": pages}


@app.get("/api/status/{job_id}")
async def get_status(job_id: str):
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job not found")
    job = jobs[job_id]
    return {
        "status": job.status,
        "progress": job.progress,
        "messages": job.messages,
        "files": [os.path.basename(f) for f in job.result_files] if job.result_files else [],
        "diagnostics": job.diagnostics,
    }


@app.get("/api/download/{job_id}/{filename}")
async def download_file(job_id: str, filename: str):
    job = jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    for path in job.result_files:
        if os.path.basename(path) == filename:
            return FileResponse(path, filename=filename)
    raise HTTPException(status_code=404, detail="File not found")
