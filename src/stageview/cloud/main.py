from __future__ import annotations

import socket
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..builder import StageService
from ..errors import BuildNotFound
from ..model import Approval, BuildView, RequiredParameter, Stage
from ..segmenter import SegmentCache
from ..ui.console import Console, set_console
from .db import make_engine
from .redislock import ApprovalLock, connect
from .settings import DATABASE_URL, DEBUG, LOG_MAX_CHARS
from .store import SqlStore

router = APIRouter()

# -------------------- Schemas --------------------

class ChoiceOut(BaseModel):
    key: str
    value: str

class ParameterOut(BaseModel):
    name: str
    type: str
    input_type: str
    description: Optional[str] = None
    default_value: Any = None
    choices: list[ChoiceOut] = Field(default_factory=list)
    required: bool = False

class InputOut(BaseModel):
    id: str
    message: Optional[str]
    submitter: Optional[str]
    proceed_text: str
    parameters: list[ParameterOut]
    submit_url: str
    abort_url: str

class StageOut(BaseModel):
    id: str
    name: str
    status: str
    executed: bool
    start_time_millis: Optional[int]
    duration_millis: Optional[int]
    logs: str
    input: Optional[InputOut] = None

class BuildViewOut(BaseModel):
    job_name: str
    job_full_name: str
    build_number: int
    build_url: str
    build_status: str
    running: bool
    stages: list[StageOut]

class StageLogOut(BaseModel):
    stage_id: str
    name: str
    status: str
    logs: str

class SubmitRequest(BaseModel):
    input_id: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

class AbortRequest(BaseModel):
    input_id: str = ""

class OutcomeResponse(BaseModel):
    ok: bool
    input_id: str

# -------------------- Serialization --------------------

def _parameter_out(p: RequiredParameter) -> ParameterOut:
    return ParameterOut(
        name=p.name,
        type=p.declared_type.value,
        input_type=p.input_type,
        description=p.description,
        default_value=p.default_value,
        choices=[ChoiceOut(key=k, value=v) for k, v in p.choices],
        required=p.required,
    )

def _input_out(a: Approval, build_url: str) -> InputOut:
    base = build_url if build_url.endswith("/") or not build_url else build_url + "/"
    return InputOut(
        id=a.id,
        message=a.message,
        submitter=a.submitter_pattern,
        proceed_text=a.proceed_label,
        parameters=[_parameter_out(p) for p in a.parameters],
        submit_url=f"{base}input/{a.id}/submit",
        abort_url=f"{base}input/{a.id}/abort",
    )

def _stage_out(s: Stage, build_url: str) -> StageOut:
    return StageOut(
        id=s.id,
        name=s.name,
        status=s.status.value,
        executed=s.executed,
        start_time_millis=s.start_time_millis,
        duration_millis=s.duration_millis,
        logs=s.logs,
        input=_input_out(s.approval, build_url) if s.approval is not None else None,
    )

def view_out(view: BuildView) -> BuildViewOut:
    return BuildViewOut(
        job_name=view.job_name,
        job_full_name=view.job_full_name,
        build_number=view.build_number,
        build_url=view.build_url,
        build_status=view.overall_status.value,
        running=view.running,
        stages=[_stage_out(s, view.build_url) for s in view.stages],
    )

# -------------------- Wiring --------------------

def default_service() -> StageService:
    set_console(Console(debug=DEBUG))
    store = SqlStore(make_engine(DATABASE_URL), ApprovalLock(connect(), owner=socket.gethostname()))
    store.create_all()
    return StageService(store, store, store, cache=SegmentCache(), max_log_chars=LOG_MAX_CHARS)

def get_service(request: Request) -> StageService:
    service = request.app.state.service
    if service is None:
        service = default_service()
        request.app.state.service = service
    return service

def _require_input_id(input_id: str) -> str:
    input_id = (input_id or "").strip()
    if not input_id:
        raise HTTPException(status_code=400, detail="Missing required field: input_id")
    return input_id

# -------------------- Endpoints --------------------

@router.get("/healthz")
def healthz():
    return {"status": "ok"}

@router.get("/builds/{build_id}/stages", response_model=BuildViewOut)
def stages(build_id: str, service: StageService = Depends(get_service)):
    """Stages waiting for input."""
    return view_out(service.get_stage_view(build_id))

@router.get("/builds/{build_id}/allstages", response_model=BuildViewOut)
def all_stages(build_id: str, service: StageService = Depends(get_service)):
    """Every stage, ALL first, with logs."""
    return view_out(service.get_full_stage_view(build_id))

@router.get("/builds/{build_id}/stagelog", response_model=StageLogOut)
def stage_log(build_id: str, stage_id: str = "", service: StageService = Depends(get_service)):
    if not stage_id.strip():
        raise HTTPException(status_code=400, detail="Missing required parameter: stage_id")
    stage = service.get_stage_log(build_id, stage_id)
    if stage is None:
        raise HTTPException(status_code=404, detail=f"Stage with ID {stage_id} not found")
    return StageLogOut(stage_id=stage.id, name=stage.name, status=stage.status.value, logs=stage.logs)

@router.post("/builds/{build_id}/submit", response_model=OutcomeResponse)
def submit(build_id: str, req: SubmitRequest, service: StageService = Depends(get_service)):
    input_id = _require_input_id(req.input_id)
    if not service.submit_approval(build_id, input_id, req.parameters):
        raise HTTPException(status_code=409, detail=f"Input {input_id} is not pending")
    return OutcomeResponse(ok=True, input_id=input_id)

@router.post("/builds/{build_id}/abort", response_model=OutcomeResponse)
def abort(build_id: str, req: AbortRequest, service: StageService = Depends(get_service)):
    input_id = _require_input_id(req.input_id)
    if not service.abort_approval(build_id, input_id):
        raise HTTPException(status_code=409, detail=f"Input {input_id} is not pending")
    return OutcomeResponse(ok=True, input_id=input_id)

# -------------------- App --------------------

def create_app(service: Optional[StageService] = None) -> FastAPI:
    app = FastAPI(title="stageview")
    app.state.service = service

    @app.exception_handler(BuildNotFound)
    async def build_not_found(request: Request, exc: BuildNotFound):
        return JSONResponse(status_code=404, content={"detail": exc.message})

    app.include_router(router)
    return app

app = create_app()
