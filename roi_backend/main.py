import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .agent_service import AgentService
from .assistant import AssistantRelay, assistant_config
from .assistant_context import AssistantContextBuilder
from .config import get_settings
from .conversations import ConversationStore
from .errors import RecordNotFoundError, RecordValidationError, StorageError
from .export import EXPORT_MEDIA_TYPE, export_filename, export_studies_csv, filter_studies
from .logging_config import setup_logging
from .metrics import compute_metrics, format_currency, format_hours, format_minutes_to_time, format_number
from .projections import ProjectionAggregator
from .schemas import (
    AdoptionStats,
    AdoptionUpdate,
    Agent,
    AgentChanges,
    AgentFields,
    AgentProjection,
    ChatRequest,
    ChatResponse,
    GlobalSummary,
    MetricsPreviewRequest,
    StudyChanges,
    StudyTotals,
    StudyWithAgent,
)
from .storage import InMemoryRecordStore
from .study_service import StudyService

settings = get_settings()
logger = setup_logging(settings.log_level)

app = FastAPI(
    title="AI ROI Tracker Backend",
    version="0.1.0",
    description="Records time-and-motion studies for AI agents and reports projected vs actual savings.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

store = InMemoryRecordStore(logger=logger)
agent_service = AgentService(store, logger=logger)
study_service = StudyService(store, logger=logger)
aggregator = ProjectionAggregator(agent_service, study_service, settings=settings, logger=logger)
context_builder = AssistantContextBuilder(agent_service, study_service, store, settings=settings, logger=logger)
conversation_store = ConversationStore(ttl_seconds=settings.conversation_ttl_seconds, logger=logger)

# The assistant stays disabled until an API key is configured
assistant_relay: Optional[AssistantRelay] = (
    AssistantRelay(settings=settings, logger=logger) if settings.assistant_enabled else None
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Request logging middleware with latency capture."""

    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.info(
        "Handled request",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "client": request.client.host if request.client else None,
        },
    )
    return response


@app.exception_handler(RecordValidationError)
async def handle_validation_error(request: Request, exc: RecordValidationError):
    logger.info("Rejected invalid input", extra={"path": request.url.path, "field": exc.field})
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


@app.exception_handler(RecordNotFoundError)
async def handle_not_found(request: Request, exc: RecordNotFoundError):
    return JSONResponse(
        status_code=404,
        content={"detail": str(exc), "collection": exc.collection, "id": exc.record_id},
    )


@app.exception_handler(StorageError)
async def handle_storage_error(request: Request, exc: StorageError):
    logger.error("Storage failure", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=503, content={"detail": "Storage is unavailable. Please try again."})


@app.get("/api/health")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok", "service": "roi-tracker-backend"}


@app.post("/api/metrics/preview")
async def preview_metrics(request: MetricsPreviewRequest) -> Dict[str, Any]:
    """Live preview of the derived study figures; nothing is stored."""
    metrics = compute_metrics(
        request.time_without_ai_minutes,
        request.time_with_ai_minutes,
        request.usage_count,
        request.usage_discount_percent,
        request.cost_per_hour,
    )
    return {
        "metrics": metrics.model_dump(),
        "formatted": {
            "time_saved_minutes": format_number(metrics.time_saved_minutes),
            "time_saved_per_use": format_minutes_to_time(metrics.time_saved_minutes),
            "net_usage": format_number(metrics.net_usage),
            "net_time_saved_hours": format_hours(metrics.net_time_saved_hours),
            "potential_savings": format_currency(metrics.potential_savings),
        },
    }


# --- Agents -----------------------------------------------------------------

@app.get("/api/agents", response_model=List[Agent])
async def list_agents(status: Optional[str] = None, division_id: Optional[str] = None):
    return await agent_service.list(status=status, division_id=division_id)


@app.post("/api/agents", response_model=Agent, status_code=201)
async def create_agent(payload: AgentFields):
    return await agent_service.create(payload)


@app.get("/api/agents/adoption/stats", response_model=AdoptionStats)
async def get_adoption_stats():
    return await agent_service.adoption_stats()


@app.get("/api/agents/{agent_id}", response_model=Agent)
async def get_agent(agent_id: str):
    agent = await agent_service.get_by_id(agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail=f"agents record {agent_id} not found")
    return agent


@app.put("/api/agents/{agent_id}", response_model=Agent)
async def update_agent(agent_id: str, payload: AgentChanges):
    return await agent_service.update(agent_id, payload)


@app.put("/api/agents/{agent_id}/adoption", response_model=Agent)
async def update_agent_adoption(agent_id: str, payload: AdoptionUpdate):
    return await agent_service.update_adoption(
        agent_id,
        payload.target_user_base,
        payload.current_active_users,
        payload.methodology,
    )


@app.delete("/api/agents/{agent_id}")
async def delete_agent(agent_id: str) -> Dict[str, str]:
    await agent_service.delete(agent_id)
    return {"status": "deleted", "id": agent_id}


@app.get("/api/agents/{agent_id}/projection", response_model=AgentProjection)
async def get_agent_projection(agent_id: str):
    return await aggregator.agent_projection(agent_id)


@app.get("/api/agents/{agent_id}/adoption-outlook")
async def get_adoption_outlook(agent_id: str, scenario_percent: Optional[float] = None) -> Dict[str, Any]:
    outlook = await aggregator.adoption_outlook(agent_id)
    body: Dict[str, Any] = {"outlook": outlook.model_dump()}
    if scenario_percent is not None:
        if not 0 <= scenario_percent <= 100:
            raise RecordValidationError("scenario_percent", "must be between 0 and 100")
        scenario = await aggregator.adoption_scenario(agent_id, scenario_percent)
        body["scenario"] = scenario.model_dump()
    return body


# --- Studies ----------------------------------------------------------------

@app.get("/api/studies", response_model=List[StudyWithAgent])
async def list_studies(agent_id: Optional[str] = None):
    return await study_service.list(agent_id=agent_id)


@app.post("/api/studies", response_model=StudyWithAgent, status_code=201)
async def create_study(payload: StudyChanges):
    return await study_service.create(payload)


@app.post("/api/studies/batch", response_model=List[StudyWithAgent], status_code=201)
async def create_studies(payload: List[StudyChanges]):
    return await study_service.create_many(payload)


@app.get("/api/studies/totals", response_model=StudyTotals)
async def get_study_totals(agent_id: Optional[str] = None):
    return await study_service.aggregate_totals(agent_id=agent_id)


@app.get("/api/studies/export")
async def export_studies(search: Optional[str] = None, agent_id: Optional[str] = None) -> Response:
    studies = filter_studies(await study_service.list(), search=search, agent_id=agent_id)
    filename = export_filename()
    logger.info("Exported studies", extra={"rows": len(studies), "export_file": filename})
    return Response(
        content=export_studies_csv(studies),
        media_type=EXPORT_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/studies/{study_id}", response_model=StudyWithAgent)
async def get_study(study_id: str):
    study = await study_service.get_by_id(study_id)
    if study is None:
        raise HTTPException(status_code=404, detail=f"studies record {study_id} not found")
    return study


@app.put("/api/studies/{study_id}", response_model=StudyWithAgent)
async def update_study(study_id: str, payload: StudyChanges):
    return await study_service.update(study_id, payload)


@app.delete("/api/studies/{study_id}")
async def delete_study(study_id: str) -> Dict[str, str]:
    await study_service.delete(study_id)
    return {"status": "deleted", "id": study_id}


# --- Summaries and assistant ------------------------------------------------

@app.get("/api/summary", response_model=GlobalSummary)
async def get_summary(division_id: Optional[str] = None):
    return await aggregator.global_summary(division_id=division_id)


@app.get("/api/summary/projected-agents", response_model=List[AgentProjection])
async def get_projected_agents(division_id: Optional[str] = None):
    return await aggregator.projected_agents(division_id=division_id)


@app.get("/api/assistant/context")
async def get_assistant_context(
    division_id: Optional[str] = None,
    current_view: Optional[str] = None,
    selected_agent_id: Optional[str] = None,
) -> Dict[str, Any]:
    return await context_builder.build(division_id, current_view, selected_agent_id)


@app.get("/api/assistant")
async def get_assistant_info() -> Dict[str, Any]:
    """Describe the analytics assistant and whether it is enabled."""
    config = assistant_config(settings)
    return {
        "enabled": assistant_relay is not None,
        "name": config.name,
        "description": config.description,
        "model": config.model,
    }


@app.post("/api/chat", response_model=ChatResponse)
async def chat(request: ChatRequest):
    if assistant_relay is None:
        raise HTTPException(status_code=503, detail="Assistant is not configured")

    existing = await conversation_store.get(request.conversation_id) if request.conversation_id else None
    history = list(existing.messages) if existing else []

    context = await context_builder.build(
        request.division_id,
        request.current_view,
        request.selected_agent_id,
    )

    try:
        reply = await assistant_relay.reply(history, request.message, context)
    except Exception as exc:
        logger.exception("Assistant request failed")
        raise HTTPException(status_code=502, detail="Assistant request failed. Please try again.") from exc

    # Conversations are only opened once a turn has succeeded
    conversation = await conversation_store.get_or_create(existing.conversation_id if existing else None)
    conversation_logger = conversation_store.get_conversation_logger(conversation.conversation_id)

    await conversation_store.append(conversation.conversation_id, "user", request.message)
    conversation = await conversation_store.append(conversation.conversation_id, "assistant", reply)

    logger.info(
        "Chat turn complete",
        extra={"conversation_id": conversation.conversation_id, "history_len": len(conversation.messages)},
    )
    if conversation_logger:
        conversation_logger.info(f"Chat turn complete - Total messages: {len(conversation.messages)}")

    return ChatResponse(
        conversation_id=conversation.conversation_id,
        reply=reply,
        history=conversation.messages,
    )


@app.get("/api/chat/{conversation_id}", response_model=ChatResponse)
async def get_conversation(conversation_id: str):
    conversation = await conversation_store.get(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    last_reply = next((m.content for m in reversed(conversation.messages) if m.role == "assistant"), "")
    return ChatResponse(conversation_id=conversation_id, reply=last_reply, history=conversation.messages)


@app.delete("/api/chat/{conversation_id}")
async def delete_conversation(conversation_id: str) -> Dict[str, str]:
    if not await conversation_store.delete(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "deleted", "id": conversation_id}


@app.get("/")
async def root():
    return {"message": "AI ROI tracker backend is running"}
