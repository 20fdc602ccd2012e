from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .models import PortMapping, ServiceConfig


class ModuleStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    status: Literal["empty", "loading", "ready", "failed"]
    error: str | None = None


class ContainerSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image: str
    state: str = ""
    ports: list[PortMapping] = Field(default_factory=list)


class ServiceStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    config: ServiceConfig | None = None
    loading: bool = False
    updating: bool = False
    exists_in_store: bool = False
    synced: bool = False
    error: str | None = None


class ScreenState(BaseModel):
    """Everything a view needs to draw the current screen."""

    model_config = ConfigDict(frozen=True)

    screen: Literal["setup", "main"] = "setup"
    view: Literal["modules", "no_service", "pending", "alive"] = "modules"
    modules: list[ModuleStatus] = Field(default_factory=list)
    can_retry: bool = False
    can_continue: bool = False
    service: ServiceStatus = Field(default_factory=ServiceStatus)
    containers: list[ContainerSummary] = Field(default_factory=list)
    containers_refreshing: bool = False


class AdoptRequest(BaseModel):
    container_id: str = Field(..., min_length=1, description="Docker id of the container to adopt")


class Accepted(BaseModel):
    accepted: bool = True
