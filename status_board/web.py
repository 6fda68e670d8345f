from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from status_board.config import DashboardConfig, load_config
from status_board.presenter import ConsolePresenter, build_dashboard_context
from status_board.scheduler import CycleScheduler


logger = structlog.get_logger(__name__)


def build_scheduler(config: DashboardConfig) -> CycleScheduler:
    return CycleScheduler(
        config.services(),
        timeout_ms=config.probe_timeout_ms,
        refresh_interval_ms=config.refresh_interval_ms,
        probe_path=config.probe_path,
        user_agent=config.user_agent,
    )


def create_app(config: DashboardConfig | None = None, scheduler: CycleScheduler | None = None) -> FastAPI:
    config = config or load_config()
    scheduler = scheduler or build_scheduler(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await app.state.scheduler.start()
        try:
            yield
        finally:
            await app.state.scheduler.stop()

    app = FastAPI(title="Status Board", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.categories = config.service_categories()
    app.state.scheduler = scheduler

    templates_dir = Path(__file__).parent / "templates"
    app.state.templates = Jinja2Templates(directory=str(templates_dir))

    presenter = ConsolePresenter()
    app.state.scheduler.add_result_listener(presenter.on_result)
    app.state.scheduler.add_summary_listener(presenter.on_summary)

    @app.get("/", response_class=HTMLResponse)
    async def dashboard(req: Request) -> HTMLResponse:
        sched: CycleScheduler = app.state.scheduler
        context = build_dashboard_context(app.state.categories, sched.last_summary, running=sched.is_running)
        return app.state.templates.TemplateResponse(req, "dashboard.html", context)

    @app.get("/api/status")
    async def api_status() -> dict[str, Any]:
        sched: CycleScheduler = app.state.scheduler
        summary = sched.last_summary
        return {
            "state": sched.state.value,
            "summary": summary.to_dict() if summary is not None else None,
        }

    @app.post("/api/refresh")
    async def api_refresh() -> dict[str, Any]:
        accepted = app.state.scheduler.request_refresh()
        logger.info("Manual refresh requested", accepted=accepted)
        return {"accepted": accepted}

    @app.post("/refresh")
    async def form_refresh() -> RedirectResponse:
        app.state.scheduler.request_refresh()
        return RedirectResponse(url="/", status_code=303)

    return app
