"""FastAPI application: command interface of the event board."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from eventboard.config import get_settings
from eventboard.domain import errors
from eventboard.domain.bus import EventBus
from eventboard.domain.handlers import HandlerRegistry
from eventboard.domain.models import (
    ChangeRoleRequest,
    ChangeTimeRequest,
    CreateEventRequest,
    DeleteResult,
    DMRecord,
    Event,
    JoinRequest,
    PurgeResult,
    ReminderJob,
    Requester,
)
from eventboard.logconfig import configure_logging
from eventboard.repos.memory import (
    InMemoryDMTrackingRepository,
    InMemoryEventStore,
    InMemoryJobQueue,
)
from eventboard.repos.redis_backend import (
    RedisBackend,
    RedisDMTrackingRepository,
    RedisEventStore,
    RedisJobQueue,
)
from eventboard.services.announcements import InMemoryAnnouncementBoard
from eventboard.services.auth import Authorizer
from eventboard.services.events import EventService
from eventboard.services.messenger import InMemoryMessenger
from eventboard.services.notifications import NotificationDispatcher
from eventboard.services.reminders import ReminderOrchestrator
from eventboard.services.worker import JobWorker

settings = get_settings()
configure_logging(settings.log_level, json=settings.log_json)
logger = structlog.get_logger(__name__)

# ── Singletons (created at import time for simplicity) ────────────────
redis_backend: RedisBackend | None = None
if settings.backend == "redis":
    redis_backend = RedisBackend(settings.redis_url, settings.key_prefix)
    event_store = RedisEventStore(redis_backend)
    dm_repo = RedisDMTrackingRepository(redis_backend)
    job_queue = RedisJobQueue(redis_backend)
else:
    event_store = InMemoryEventStore()
    dm_repo = InMemoryDMTrackingRepository()
    job_queue = InMemoryJobQueue()

messenger = InMemoryMessenger()
announcements = InMemoryAnnouncementBoard()
event_bus = EventBus()
dispatcher = NotificationDispatcher(messenger, dm_repo)
orchestrator = ReminderOrchestrator(event_store, job_queue, dispatcher, announcements)
authorizer = Authorizer(
    settings.authorized_users,
    settings.authorized_roles,
    restrict_event_creation=settings.restrict_event_creation,
)
event_service = EventService(event_store, event_bus, orchestrator, authorizer)
handler_registry = HandlerRegistry(
    bus=event_bus,
    store=event_store,
    orchestrator=orchestrator,
    dispatcher=dispatcher,
    announcements=announcements,
)
worker = JobWorker(
    job_queue,
    orchestrator.handle_job,
    poll_interval=settings.poll_interval_seconds,
    batch_size=settings.worker_batch_size,
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if redis_backend is not None:
        await redis_backend.initialize()
    if settings.run_worker:
        await job_queue.requeue_stalled()
        await orchestrator.reconcile()
        worker.start()
    yield
    await worker.stop()
    if redis_backend is not None:
        await redis_backend.shutdown()


app = FastAPI(title="Event Board", lifespan=lifespan)


@app.exception_handler(errors.EventBoardError)
async def event_board_error_handler(_request: Request, exc: errors.EventBoardError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        problems.append(f"{field}: {error['msg']}" if field else error["msg"])
    return JSONResponse(
        status_code=errors.ValidationError.status_code,
        content={"detail": "; ".join(problems), "code": errors.ValidationError.code},
    )


def get_requester(x_user_id: str = Header(), x_role_ids: str = Header(default="")) -> Requester:
    """Identify the caller from the ``X-User-Id`` / ``X-Role-Ids`` headers."""
    role_ids = [r.strip() for r in x_role_ids.split(",") if r.strip()]
    return Requester(user_id=x_user_id, role_ids=role_ids)


# ── Routes ────────────────────────────────────────────────────────────


@app.post("/events", response_model=Event, status_code=201)
async def create_event(
    body: CreateEventRequest, requester: Requester = Depends(get_requester)
) -> Event:
    """Create an event organized by the caller."""
    return await event_service.create(body, requester)


@app.get("/events", response_model=list[Event])
async def list_events() -> list[Event]:
    """Return all stored events, soonest first."""
    return await event_service.list_events()


@app.get("/events/{event_id}", response_model=Event)
async def get_event(event_id: str) -> Event:
    return await event_service.get(event_id)


@app.post("/events/{event_id}/participation", response_model=Event)
async def join_event(
    event_id: str, body: JoinRequest, requester: Requester = Depends(get_requester)
) -> Event:
    return await event_service.join(event_id, requester.user_id, body.role, body.class_name)


@app.patch("/events/{event_id}/participation", response_model=Event)
async def change_role(
    event_id: str, body: ChangeRoleRequest, requester: Requester = Depends(get_requester)
) -> Event:
    return await event_service.change_role(event_id, requester.user_id, body.role, body.class_name)


@app.delete("/events/{event_id}/participation", response_model=Event)
async def withdraw(event_id: str, requester: Requester = Depends(get_requester)) -> Event:
    return await event_service.withdraw(event_id, requester.user_id)


@app.put("/events/{event_id}/time", response_model=Event)
async def change_time(
    event_id: str, body: ChangeTimeRequest, requester: Requester = Depends(get_requester)
) -> Event:
    return await event_service.change_time(event_id, requester, body)


@app.delete("/events/{event_id}", response_model=DeleteResult)
async def delete_event(event_id: str, requester: Requester = Depends(get_requester)) -> DeleteResult:
    return await event_service.delete(event_id, requester)


@app.delete("/events", response_model=PurgeResult)
async def purge_events(requester: Requester = Depends(get_requester)) -> PurgeResult:
    """Remove every event and its jobs without notifying participants."""
    return await event_service.purge(requester)


@app.get("/events/{event_id}/jobs", response_model=list[ReminderJob])
async def list_event_jobs(event_id: str) -> list[ReminderJob]:
    """Return the pending reminder/cleanup jobs of an event."""
    return await job_queue.list_pending(event_id=event_id)


@app.get("/events/{event_id}/notifications", response_model=list[DMRecord])
async def list_event_notifications(event_id: str) -> list[DMRecord]:
    return await dm_repo.list_for_event(event_id)


@app.post("/tick")
async def tick(now: datetime | None = None) -> dict:
    """Fire every job due at *now*.

    Pass *now* as a query param to control the simulated clock.
    Defaults to ``datetime.now(timezone.utc)`` when omitted.
    """
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)
    fired = await worker.run_due(current_time)
    return {"time": current_time.isoformat(), "jobs_fired": fired}


def run() -> None:
    import uvicorn

    uvicorn.run("eventboard.main:app", host="0.0.0.0", port=8000)
