"""FastAPI application exposing the attendance dashboard."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Generator

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from thermodash.config import DashboardConfig
from thermodash.state import SettingsValidationError

from . import get_dashboard_config
from .controller import Dashboard
from .database import EventDatabase, get_database
from .models import (
    ActionResponse,
    ConnectionState,
    DashboardSnapshot,
    EndpointsResponse,
    EventLogResponse,
    EventType,
    HealthResponse,
    Settings,
    SettingsUpdate,
    StatsResponse,
)


def create_app(
    dashboard: Dashboard | None = None,
    db_instance: EventDatabase | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The application's lifespan starts the dashboard (status probe and records
    loop) and closes it on shutdown.
    """
    dash = dashboard or Dashboard(DashboardConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await dash.start()
        try:
            yield
        finally:
            await dash.close()

    app = FastAPI(
        title="Thermodash API",
        description="Thermal camera attendance monitoring dashboard",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.dashboard = dash

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _db: EventDatabase | None = db_instance

    def get_db() -> Generator[EventDatabase, None, None]:
        """Get event database instance."""
        if _db is not None:
            yield _db
        else:
            yield get_database()

    def action(success: bool) -> ActionResponse:
        return ActionResponse(
            success=success,
            monitoring=dash.state.monitoring,
            last_error=dash.state.last_error,
        )

    @app.get("/api/state", response_model=DashboardSnapshot)
    async def get_state():
        """Get the full dashboard snapshot."""
        return dash.snapshot()

    @app.get("/api/frame")
    async def get_frame():
        """Get the most recent camera frame."""
        if dash.state.frame is None:
            raise HTTPException(status_code=404, detail="No frame received yet")
        return Response(content=dash.state.frame, media_type="image/jpeg")

    @app.post("/api/status/refresh", response_model=ActionResponse)
    async def refresh_status():
        """Re-check the backend status on demand."""
        return action(await dash.refresh_status())

    @app.post("/api/monitoring/start", response_model=ActionResponse)
    async def start_monitoring():
        await dash.start_monitoring()
        return action(True)

    @app.post("/api/monitoring/stop", response_model=ActionResponse)
    async def stop_monitoring():
        await dash.stop_monitoring()
        return action(True)

    @app.post("/api/monitoring/toggle", response_model=ActionResponse)
    async def toggle_monitoring():
        await dash.toggle_monitoring()
        return action(True)

    @app.get("/api/settings", response_model=Settings)
    async def get_settings():
        return dash.state.settings

    @app.put("/api/settings", response_model=Settings)
    async def update_settings(update: SettingsUpdate):
        """Validate and apply a partial settings update."""
        changes = update.model_dump(exclude_unset=True)
        try:
            return dash.update_settings(**changes)
        except SettingsValidationError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

    @app.post("/api/capture", response_model=ActionResponse)
    async def capture():
        """Trigger a manual attendance capture."""
        return action(await dash.capture())

    @app.post("/api/records/refresh", response_model=ActionResponse)
    async def refresh_records():
        return action(await dash.refresh_records())

    @app.get("/api/records/export")
    async def export_records():
        """Download the loaded records as JSON."""
        filename, content = dash.export()
        return Response(
            content=content,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.delete("/api/error", response_model=ActionResponse)
    async def dismiss_error():
        """Dismiss the error banner."""
        dash.dismiss_error()
        return action(True)

    @app.get("/api/config")
    async def get_config() -> dict[str, Any]:
        return get_dashboard_config(dash.config)

    @app.get("/api/stats", response_model=StatsResponse)
    async def get_stats(db: EventDatabase = Depends(get_db)):
        """Get backend call statistics."""
        stats = db.get_stats()
        total = stats["total_events"]
        error_rate = stats["total_errors"] / total if total > 0 else 0.0

        return StatsResponse(
            total_events=total,
            total_errors=stats["total_errors"],
            polls=stats["polls"],
            captures=stats["captures"],
            error_rate=round(error_rate, 3),
        )

    @app.get("/api/endpoints", response_model=EndpointsResponse)
    async def get_endpoints(db: EventDatabase = Depends(get_db)):
        """Get per-endpoint statistics."""
        return EndpointsResponse(endpoints=db.get_endpoint_stats())

    @app.get("/api/events", response_model=EventLogResponse)
    async def get_events(
        limit: Annotated[int, Query(ge=1, le=1000)] = 100,
        offset: Annotated[int, Query(ge=0)] = 0,
        event_type: Annotated[
            EventType | None, Query()
        ] = None,
        db: EventDatabase = Depends(get_db),
    ):
        """Get paginated event log."""
        events, total = db.get_events(limit=limit, offset=offset, event_type=event_type)
        page = (offset // limit) + 1

        return EventLogResponse(
            events=events,
            total=total,
            page=page,
            limit=limit,
        )

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check(db: EventDatabase = Depends(get_db)):
        """Service health check."""
        try:
            db.get_stats()
            db_status = "healthy"
        except Exception:
            db_status = "unhealthy"

        connection = dash.state.connection_state
        healthy = db_status == "healthy" and connection != ConnectionState.ERROR
        return HealthResponse(
            status="healthy" if healthy else "degraded",
            database=db_status,
            connection=connection,
            timestamp=datetime.now(timezone.utc),
        )

    return app


# Default app instance
app = create_app()
