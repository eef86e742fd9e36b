from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session, sessionmaker

from kestrel.api.deps import DriverFactory, get_db, get_driver_factory, get_llm_router, get_session_factory
from kestrel.api.schemas import (
    ApplicationCreateRequest,
    ApplicationResponse,
    AutomationStatusResponse,
    CompanyCreateRequest,
    CompanyResponse,
    LogEventResponse,
    ProfileResponse,
    ProfileUpdateRequest,
)
from kestrel.config import get_settings
from kestrel.core.controller import AutomationController
from kestrel.core.embedding_cache import EmbeddingCache
from kestrel.core.profile import load_profile_embedding, replace_resume
from kestrel.core.runtime import get_controller, get_event_bus, register_controller, start_lock
from kestrel.db.repositories import Repository
from kestrel.errors import InvalidTransitionError, ProviderUnavailableError
from kestrel.llm.router import LLMRouter
from kestrel.types import AutomationState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


@router.put("/profiles/{owner_id}", response_model=ProfileResponse)
async def update_profile(
    owner_id: str,
    payload: ProfileUpdateRequest,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm_router),
) -> ProfileResponse:
    try:
        profile = await replace_resume(Repository(db), owner_id, payload.resume_text, router=llm)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ProfileResponse(
        owner_id=profile.owner_id,
        has_resume=bool(profile.resume_text),
        persona_text=profile.persona_text,
    )


@router.get("/profiles/{owner_id}", response_model=ProfileResponse)
def get_profile(owner_id: str, db: Session = Depends(get_db)) -> ProfileResponse:
    profile = Repository(db).get_profile(owner_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return ProfileResponse(
        owner_id=profile.owner_id,
        has_resume=bool(profile.resume_text),
        persona_text=profile.persona_text,
    )


@router.post("/automation/{owner_id}/start", response_model=AutomationStatusResponse)
async def start_automation(
    owner_id: str,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm_router),
    driver_factory: DriverFactory = Depends(get_driver_factory),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> AutomationStatusResponse:
    async with start_lock(owner_id):
        current = get_controller(owner_id)
        if current is not None and not current.state.is_terminal:
            raise HTTPException(status_code=409, detail=f"Automation is already {current.state.value}")

        settings = get_settings()
        repo = Repository(db)
        cache = EmbeddingCache(repo, llm, case_sensitive=settings.embedding_case_sensitive)
        try:
            profile = await load_profile_embedding(
                repo,
                owner_id,
                router=llm,
                cache=cache,
                model=settings.embedding_model,
            )
        except ProviderUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        if profile is None:
            raise HTTPException(status_code=404, detail="Profile not found")

        driver = await driver_factory(settings)
        session = session_factory()
        try:
            controller = AutomationController(
                session,
                owner_id=owner_id,
                driver=driver,
                profile=profile,
                llm=llm,
                settings=settings,
            )
            status = await controller.start()
        except Exception:
            logger.exception("Automation failed to start owner=%s", owner_id)
            await driver.close()
            session.close()
            raise
        register_controller(controller)

    logger.info("Automation started owner=%s", owner_id)
    return AutomationStatusResponse.model_validate(status.model_dump())


@router.post("/automation/{owner_id}/pause", response_model=AutomationStatusResponse)
def pause_automation(owner_id: str) -> AutomationStatusResponse:
    controller = _require_controller(owner_id)
    try:
        status = controller.pause()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return AutomationStatusResponse.model_validate(status.model_dump())


@router.post("/automation/{owner_id}/resume", response_model=AutomationStatusResponse)
def resume_automation(owner_id: str) -> AutomationStatusResponse:
    controller = _require_controller(owner_id)
    try:
        status = controller.resume()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return AutomationStatusResponse.model_validate(status.model_dump())


@router.post("/automation/{owner_id}/stop", response_model=AutomationStatusResponse)
async def stop_automation(owner_id: str) -> AutomationStatusResponse:
    controller = _require_controller(owner_id)
    try:
        status = await controller.stop()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return AutomationStatusResponse.model_validate(status.model_dump())


@router.get("/automation/{owner_id}", response_model=AutomationStatusResponse)
def get_automation_status(owner_id: str) -> AutomationStatusResponse:
    controller = get_controller(owner_id)
    if controller is None:
        return AutomationStatusResponse(owner_id=owner_id, state=AutomationState.IDLE)
    return AutomationStatusResponse.model_validate(controller.status().model_dump())


@router.get("/automation/{owner_id}/events", response_model=list[LogEventResponse])
def get_automation_events(owner_id: str, limit: int = Query(default=100, ge=1, le=1000)) -> list[LogEventResponse]:
    return [LogEventResponse.model_validate(event) for event in get_event_bus().recent(owner_id, limit)]


@router.websocket("/automation/{owner_id}/stream")
async def stream_automation_events(websocket: WebSocket, owner_id: str) -> None:
    await websocket.accept()
    event_bus = get_event_bus()
    try:
        async for event in event_bus.subscribe(owner_id):
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return


@router.get("/applications", response_model=list[ApplicationResponse])
def list_applications(
    owner_id: str,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[ApplicationResponse]:
    rows = Repository(db).list_applications(owner_id, limit=limit)
    return [ApplicationResponse.model_validate(row) for row in rows]


@router.get("/applications/search", response_model=ApplicationResponse)
def search_application(owner_id: str, job_url: str, db: Session = Depends(get_db)) -> ApplicationResponse:
    row = Repository(db).get_application(owner_id, job_url)
    if row is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return ApplicationResponse.model_validate(row)


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
def create_application(payload: ApplicationCreateRequest, db: Session = Depends(get_db)) -> ApplicationResponse:
    row = Repository(db).record_application(**payload.model_dump())
    if row is None:
        raise HTTPException(status_code=409, detail="Application already recorded for this job")
    return ApplicationResponse.model_validate(row)


@router.get("/companies", response_model=list[CompanyResponse])
def list_companies(
    owner_id: str,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[CompanyResponse]:
    rows = Repository(db).list_companies(owner_id, limit=limit)
    return [CompanyResponse.model_validate(row) for row in rows]


@router.get("/companies/search", response_model=CompanyResponse)
def search_company(owner_id: str, url: str, db: Session = Depends(get_db)) -> CompanyResponse:
    row = Repository(db).get_company(owner_id, url)
    if row is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return CompanyResponse.model_validate(row)


@router.post("/companies", response_model=CompanyResponse, status_code=201)
def create_company(payload: CompanyCreateRequest, db: Session = Depends(get_db)) -> CompanyResponse:
    row = Repository(db).record_company(**payload.model_dump())
    if row is None:
        raise HTTPException(status_code=409, detail="Company already recorded")
    return CompanyResponse.model_validate(row)


def _require_controller(owner_id: str) -> AutomationController:
    controller = get_controller(owner_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="No automation has been started for this owner")
    return controller
