from contextlib import asynccontextmanager
from typing import List, Optional
import logging

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import Response

from . import lifecycle
from .auto_advancer import AutoAdvancer
from .complaint_store import ComplaintStore
from .config import Settings, get_settings
from .dependencies import (
    get_advancer,
    get_complaint_or_404,
    get_connections,
    get_geocoder,
    get_notifier,
    get_store,
)
from .geocoding import ReverseGeocoder
from .models import (
    CATEGORY_LABELS,
    SEVERITY_LABELS,
    Complaint,
    ComplaintStatus,
    TimelineEvent,
)
from .observability import (
    get_health_check,
    init_sentry,
    metrics_endpoint,
    record_complaint_change,
    update_status_gauges,
    setup_logging,
    setup_metrics_middleware,
)
from .schemas import (
    AutoAdvanceState,
    Choice,
    ComplaintDetail,
    ComplaintList,
    ComplaintSubmission,
    ReverseGeocodeResponse,
    StatusInfo,
    StatusUpdateSchema,
    SubmitResponse,
)
from .sms_notifier import SmsNotifier, tracking_url
from .storage import KeyValueStorage, build_storage
from .timeline import (
    completed_count,
    event_caption,
    generate_timeline,
    short_id,
    status_info,
)
from .websocket_manager import ConnectionManager, StatusUpdateEvent

logger = logging.getLogger("water_tracker")


def _timeline_payload(complaint: Complaint) -> list:
    return [
        event.model_dump(mode="json", by_alias=True)
        for event in generate_timeline(complaint.status, complaint.created_at)
    ]


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[KeyValueStorage] = None,
) -> FastAPI:
    """Build the API. `storage` overrides the configured backend (used by tests)."""
    settings = settings or get_settings()

    setup_logging()
    init_sentry(settings.sentry_dsn, settings.environment)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        kv = storage if storage is not None else await build_storage(settings)
        store = ComplaintStore(kv, key=settings.storage_key)
        await store.load()

        connections = ConnectionManager()
        advancer = AutoAdvancer(store, delays=settings.auto_advance_delays)
        notifier = SmsNotifier(settings)
        geocoder = ReverseGeocoder(settings)

        async def on_change(complaint: Complaint, old_status: Optional[ComplaintStatus]):
            record_complaint_change(
                store.count_by_status(),
                category=complaint.category.value,
                severity=complaint.severity.value,
                old_status=old_status.value if old_status else None,
                new_status=complaint.status.value,
            )
            if old_status is not None:
                event = StatusUpdateEvent.build(
                    complaint.id, old_status.value, complaint.status.value,
                    _timeline_payload(complaint),
                )
                await connections.broadcast(complaint.id, event)

        store.add_listener(on_change)
        update_status_gauges(store.count_by_status())

        if settings.auto_advance_enabled:
            resumed = sum(
                advancer.start(c.id)
                for c in store.list()
                if c.status != lifecycle.TERMINAL_STATUS
            )
            if resumed:
                logger.info("Resumed auto-advance for %d complaints", resumed)

        app.state.settings = settings
        app.state.store = store
        app.state.advancer = advancer
        app.state.notifier = notifier
        app.state.geocoder = geocoder
        app.state.connections = connections
        try:
            yield
        finally:
            await advancer.shutdown()
            await notifier.aclose()
            await geocoder.aclose()
            close = getattr(kv, "close", None)
            if storage is None and close is not None:
                await close()

    app = FastAPI(title="Water Complaint API", lifespan=lifespan)

    setup_metrics_middleware(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins) or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware, allowed_hosts=list(settings.allowed_hosts) or ["*"]
    )

    @app.get("/health")
    def health(
        store: ComplaintStore = Depends(get_store),
        advancer: AutoAdvancer = Depends(get_advancer),
        connections: ConnectionManager = Depends(get_connections),
    ):
        """Health check endpoint."""
        return get_health_check(store, advancer, connections)

    @app.get("/metrics")
    def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return metrics_endpoint()

    @app.post("/api/v1/complaints/submit", status_code=201, response_model=SubmitResponse)
    async def submit_complaint(
        payload: ComplaintSubmission,
        background_tasks: BackgroundTasks,
        store: ComplaintStore = Depends(get_store),
        advancer: AutoAdvancer = Depends(get_advancer),
        notifier: SmsNotifier = Depends(get_notifier),
    ):
        complaint_id = await store.create(payload)

        async def notify_submitter():
            try:
                await notifier.send_submission_notice(
                    complaint_id, payload.contact_details.phone
                )
            except Exception as e:
                logger.error(f"Failed to send SMS notification: {e}")

        background_tasks.add_task(notify_submitter)

        if settings.auto_advance_enabled:
            advancer.start(complaint_id)

        return SubmitResponse(
            complaint_id=complaint_id,
            short_id=short_id(complaint_id),
            tracking_url=tracking_url(settings.public_base_url, complaint_id),
            status=ComplaintStatus.pending,
        )

    @app.get("/api/v1/complaints", response_model=ComplaintList)
    def list_complaints(
        status: Optional[ComplaintStatus] = Query(None),
        newest_first: bool = Query(False),
        store: ComplaintStore = Depends(get_store),
    ):
        items = store.list(status=status, newest_first=newest_first)
        return ComplaintList(items=items, total=len(items))

    @app.get("/api/v1/complaints/{complaint_id}", response_model=ComplaintDetail)
    def get_complaint(
        complaint: Complaint = Depends(get_complaint_or_404),
        advancer: AutoAdvancer = Depends(get_advancer),
    ):
        timeline = generate_timeline(complaint.status, complaint.created_at)
        return ComplaintDetail(
            complaint=complaint,
            short_id=short_id(complaint.id),
            status_info=StatusInfo(**status_info(complaint.status)),
            timeline=timeline,
            timeline_captions=[event_caption(e) for e in timeline],
            completed_steps=completed_count(complaint.status),
            auto_advance_scheduled=advancer.is_scheduled(complaint.id),
        )

    @app.get("/api/v1/complaints/{complaint_id}/timeline", response_model=List[TimelineEvent])
    def get_timeline(complaint: Complaint = Depends(get_complaint_or_404)):
        return generate_timeline(complaint.status, complaint.created_at)

    @app.patch("/api/v1/complaints/{complaint_id}/status", response_model=Complaint)
    async def update_complaint_status(
        body: StatusUpdateSchema,
        complaint: Complaint = Depends(get_complaint_or_404),
        store: ComplaintStore = Depends(get_store),
    ):
        """Set an explicit status; only the next step (or the current one) is accepted."""
        allowed, code, msg = lifecycle.can_transition(complaint.status, body.status)
        if not allowed:
            raise HTTPException(status_code=code, detail=msg)

        updated = await lifecycle.set_status(store, complaint.id, body.status)
        if updated is None:
            raise HTTPException(status_code=404, detail="Not found")
        return updated

    @app.post("/api/v1/complaints/{complaint_id}/advance", response_model=Complaint)
    async def advance_complaint(
        complaint: Complaint = Depends(get_complaint_or_404),
        store: ComplaintStore = Depends(get_store),
    ):
        if lifecycle.is_terminal(complaint.status):
            raise HTTPException(status_code=409, detail="Complaint is already resolved")
        updated = await lifecycle.advance(store, complaint.id)
        if updated is None:
            raise HTTPException(status_code=404, detail="Not found")
        return updated

    @app.post("/api/v1/complaints/{complaint_id}/auto-advance", response_model=AutoAdvanceState)
    async def start_auto_advance(
        complaint: Complaint = Depends(get_complaint_or_404),
        advancer: AutoAdvancer = Depends(get_advancer),
    ):
        scheduled = advancer.start(complaint.id)
        return AutoAdvanceState(
            complaint_id=complaint.id,
            scheduled=scheduled,
            observed_status=advancer.observed_status(complaint.id),
        )

    @app.delete("/api/v1/complaints/{complaint_id}/auto-advance", response_model=AutoAdvanceState)
    async def cancel_auto_advance(
        complaint: Complaint = Depends(get_complaint_or_404),
        advancer: AutoAdvancer = Depends(get_advancer),
    ):
        advancer.cancel(complaint.id)
        return AutoAdvanceState(complaint_id=complaint.id, scheduled=False)

    @app.get("/api/v1/categories", response_model=List[Choice])
    def list_categories():
        return [Choice(value=c.value, label=label) for c, label in CATEGORY_LABELS.items()]

    @app.get("/api/v1/severities", response_model=List[Choice])
    def list_severities():
        return [Choice(value=s.value, label=label) for s, label in SEVERITY_LABELS.items()]

    @app.get("/api/v1/geocode/reverse", response_model=ReverseGeocodeResponse)
    async def reverse_geocode(
        lat: float = Query(...),
        lon: float = Query(...),
        geocoder: ReverseGeocoder = Depends(get_geocoder),
    ):
        address = await geocoder.reverse_geocode(lat, lon)
        return ReverseGeocodeResponse(latitude=lat, longitude=lon, address=address)

    @app.get("/api/v1/notifications/config")
    def get_notification_config(notifier: SmsNotifier = Depends(get_notifier)):
        return notifier.get_config()

    @app.websocket("/ws/complaints/{complaint_id}")
    async def track_complaint(websocket: WebSocket, complaint_id: str):
        store: ComplaintStore = websocket.app.state.store
        connections: ConnectionManager = websocket.app.state.connections

        complaint = store.get(complaint_id)
        if complaint is None:
            await websocket.close(code=4404, reason="Not found")
            return

        await connections.connect(websocket, complaint_id)
        try:
            snapshot = StatusUpdateEvent.build(
                complaint.id, None, complaint.status.value, _timeline_payload(complaint)
            )
            await websocket.send_text(snapshot.model_dump_json())
            while True:
                # Trackers only listen; incoming text is ignored
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            connections.disconnect(websocket, complaint_id)

    return app


app = create_app()
