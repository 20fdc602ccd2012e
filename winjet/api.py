from __future__ import annotations

from fastapi import Body, FastAPI, HTTPException, status

from . import app as msgs
from .api_models import Accepted, AdoptRequest, ContainerSummary, ScreenState
from .models import ServiceConfig
from .runtime import ControlLoop


def create_app(loop: ControlLoop) -> FastAPI:
    """Local control surface for a running ControlLoop.

    Handlers never touch loop state: reads come from the published snapshot and
    writes are posted as messages. Effects show up in ``/screen`` once the loop
    has processed them.
    """
    api = FastAPI(title="winjet")

    def _require_idle_service() -> ScreenState:
        snap = loop.snapshot()
        if snap.service.updating or snap.service.loading:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Service operation in progress.")
        if not snap.service.synced:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Service record has not been loaded.")
        return snap

    @api.get("/screen", response_model=ScreenState)
    def get_screen() -> ScreenState:
        return loop.snapshot()

    @api.post("/setup/retry", response_model=Accepted, status_code=status.HTTP_202_ACCEPTED)
    def retry_setup() -> Accepted:
        loop.post(msgs.RetryInit())
        return Accepted()

    @api.post("/setup/done", response_model=Accepted, status_code=status.HTTP_202_ACCEPTED)
    def finish_setup() -> Accepted:
        if not loop.snapshot().can_continue:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Not every module is loaded yet.")
        loop.post(msgs.DoneSetup())
        return Accepted()

    @api.get("/containers", response_model=list[ContainerSummary])
    def list_containers() -> list[ContainerSummary]:
        return loop.snapshot().containers

    @api.post("/containers/refresh", response_model=Accepted, status_code=status.HTTP_202_ACCEPTED)
    def refresh_containers() -> Accepted:
        loop.post(msgs.RefreshContainers())
        return Accepted()

    @api.get("/service", response_model=ServiceConfig)
    def get_service() -> ServiceConfig:
        config = loop.snapshot().service.config
        if config is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No service configured.")
        return config

    @api.post("/service", response_model=Accepted, status_code=status.HTTP_202_ACCEPTED)
    def create_service(config: ServiceConfig | None = Body(None)) -> Accepted:
        _require_idle_service()
        loop.post(msgs.CreateService(config))
        return Accepted()

    @api.put("/service", response_model=Accepted, status_code=status.HTTP_202_ACCEPTED)
    def update_service(config: ServiceConfig) -> Accepted:
        snap = _require_idle_service()
        if snap.service.config is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No service to update.")
        loop.post(msgs.UpdateService(config))
        return Accepted()

    @api.post("/service/adopt", response_model=Accepted, status_code=status.HTTP_202_ACCEPTED)
    def adopt_container(req: AdoptRequest) -> Accepted:
        snap = _require_idle_service()
        if not any(c.id == req.container_id for c in snap.containers):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown container.")
        loop.post(msgs.AdoptContainer(req.container_id))
        return Accepted()

    return api
