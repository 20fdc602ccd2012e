from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from .api_models import ContainerSummary, ModuleStatus, ScreenState, ServiceStatus
from .docker_ops import ContainerRecord
from .modules import DockerAdapter, DockerModule, KVMAdapter, ModuleController, StateAdapter
from .models import ServiceConfig
from .settings import settings
from .state import ServiceStateStore, derive_from
from .tasks import Result, Task

_LOGGER = logging.getLogger(__name__)


# --- Messages ---


@dataclass(frozen=True)
class InitState:
    pass


@dataclass(frozen=True)
class InitStateRes:
    result: Result[ServiceStateStore]


@dataclass(frozen=True)
class InitDocker:
    pass


@dataclass(frozen=True)
class InitDockerRes:
    result: Result[DockerModule]


@dataclass(frozen=True)
class InitKVM:
    pass


@dataclass(frozen=True)
class InitKVMRes:
    result: Result[Any]


@dataclass(frozen=True)
class RetryInit:
    pass


@dataclass(frozen=True)
class DoneSetup:
    pass


@dataclass(frozen=True)
class LoadService:
    pass


@dataclass(frozen=True)
class LoadServiceRes:
    result: Result[ServiceConfig | None]


@dataclass(frozen=True)
class AdoptContainer:
    container_id: str


@dataclass(frozen=True)
class CreateService:
    config: ServiceConfig | None = None


@dataclass(frozen=True)
class UpdateService:
    config: ServiceConfig


@dataclass(frozen=True)
class CommitService:
    pass


@dataclass(frozen=True)
class CommitServiceRes:
    result: Result[None]


@dataclass(frozen=True)
class RefreshContainers:
    pass


@dataclass(frozen=True)
class RefreshContainersRes:
    result: Result[list[ContainerRecord]]


def _error_text(error: Exception | None) -> str | None:
    return None if error is None else str(error) or type(error).__name__


class App:
    """State owned by the control loop.

    ``update`` is the only entry point that mutates anything here and it is
    only ever called from the loop thread.
    """

    def __init__(
        self,
        data_dir: str | os.PathLike[str],
        kvm_device: str | None = None,
        state_adapter: Any = None,
        docker_adapter: Any = None,
        kvm_adapter: Any = None,
    ) -> None:
        self.data_dir = data_dir
        self.kvm_device = kvm_device or settings.kvm_device

        self.screen = "setup"

        self.state: ModuleController[Any, ServiceStateStore] = ModuleController(state_adapter or StateAdapter())
        self.docker: ModuleController[Any, DockerModule] = ModuleController(
            docker_adapter or DockerAdapter(settings.inspect_concurrency)
        )
        self.kvm: ModuleController[str, Any] = ModuleController(kvm_adapter or KVMAdapter())

        self.service: ServiceConfig | None = None
        self.service_loading = False
        self.service_updating = False
        self.service_exists_db = False
        # True only after the store was read successfully; writes wait for it.
        self.service_synced = False
        self.service_error: str | None = None
        self.containers_refreshing = False

    @property
    def controllers(self) -> tuple[ModuleController[Any, Any], ...]:
        return (self.state, self.docker, self.kvm)

    def boot(self) -> Task:
        return Task.batch([Task.done(InitState()), Task.done(InitDocker()), Task.done(InitKVM())])

    def update(self, msg: Any) -> Task:
        if isinstance(msg, InitState):
            return self.state.load(self.data_dir, InitStateRes)
        if isinstance(msg, InitStateRes):
            return self.state.loaded(msg.result, lambda: Task.done(LoadService()))

        if isinstance(msg, InitDocker):
            return self.docker.load(None, InitDockerRes)
        if isinstance(msg, InitDockerRes):
            return self.docker.loaded(msg.result)

        if isinstance(msg, InitKVM):
            return self.kvm.load(self.kvm_device, InitKVMRes)
        if isinstance(msg, InitKVMRes):
            return self.kvm.loaded(msg.result)

        if isinstance(msg, RetryInit):
            return self._retry_init()
        if isinstance(msg, DoneSetup):
            if all(c.ready for c in self.controllers):
                self.screen = "main"
            else:
                _LOGGER.debug("Setup not finished; staying on the setup screen")
            return Task.none()

        if isinstance(msg, LoadService):
            return self._load_service()
        if isinstance(msg, LoadServiceRes):
            return self._service_loaded(msg.result)

        if isinstance(msg, AdoptContainer):
            return self._adopt(msg.container_id)
        if isinstance(msg, CreateService):
            return self._replace_service(msg.config or ServiceConfig())
        if isinstance(msg, UpdateService):
            if self.service is None:
                _LOGGER.warning("No service to update")
                return Task.none()
            return self._replace_service(msg.config)

        if isinstance(msg, CommitService):
            return self._commit()
        if isinstance(msg, CommitServiceRes):
            return self._committed(msg.result)

        if isinstance(msg, RefreshContainers):
            return self._refresh_containers()
        if isinstance(msg, RefreshContainersRes):
            return self._containers_refreshed(msg.result)

        _LOGGER.warning("Unhandled message %r", msg)
        return Task.none()

    # --- setup ---

    def _retry_init(self) -> Task:
        tasks = []
        if self.state.retry_eligible and not self.state.loading:
            tasks.append(Task.done(InitState()))
        if self.docker.retry_eligible and not self.docker.loading:
            tasks.append(Task.done(InitDocker()))
        if self.kvm.retry_eligible and not self.kvm.loading:
            tasks.append(Task.done(InitKVM()))
        return Task.batch(tasks)

    # --- service reconciliation ---

    def _store(self) -> ServiceStateStore | None:
        store = self.state.value
        if store is None:
            _LOGGER.warning("State module is not loaded")
        return store

    def _load_service(self) -> Task:
        store = self._store()
        if store is None or self.service_loading:
            return Task.none()
        self.service_loading = True
        return Task.perform(store.load, LoadServiceRes)

    def _service_loaded(self, result: Result[ServiceConfig | None]) -> Task:
        self.service_loading = False
        self.service_updating = False
        if not result.ok:
            self.service_synced = False
            self.service_error = _error_text(result.error)
            _LOGGER.error("Failed to load docker service: %s", result.error)
            return Task.none()
        self.service = result.value
        self.service_exists_db = self.service is not None
        self.service_synced = True
        self.service_error = None
        return Task.none()

    def _busy(self) -> bool:
        if self.service_updating or self.service_loading:
            _LOGGER.debug("Service operation already in flight")
            return True
        if not self.service_synced:
            _LOGGER.warning("Service record was not loaded from the store; refusing to write")
            return True
        return False

    def _adopt(self, container_id: str) -> Task:
        docker_module = self.docker.value
        record = docker_module.find(container_id) if docker_module else None
        if record is None:
            _LOGGER.warning("Unknown container %s", container_id)
            return Task.none()
        return self._replace_service(derive_from(record))

    def _replace_service(self, config: ServiceConfig) -> Task:
        if self._busy() or self._store() is None:
            return Task.none()
        # The record id is assigned once; later replacements keep it.
        if self.service is not None and config.id != self.service.id:
            config = config.model_copy(update={"id": self.service.id})
        self.service = config
        return Task.done(CommitService())

    def _commit(self) -> Task:
        store = self._store()
        if store is None or self.service is None or self._busy():
            return Task.none()
        self.service_updating = True
        return Task.perform(store.commit, CommitServiceRes, self.service, self.service_exists_db)

    def _committed(self, result: Result[None]) -> Task:
        self.service_updating = False
        if not result.ok:
            self.service_error = _error_text(result.error)
            _LOGGER.error("Failed to store docker service: %s", result.error)
            return Task.none()
        self.service_exists_db = True
        self.service_error = None
        return Task.none()

    # --- containers ---

    def _refresh_containers(self) -> Task:
        docker_module = self.docker.value
        if docker_module is None or self.containers_refreshing:
            return Task.none()
        self.containers_refreshing = True
        return Task.perform(docker_module.refresh, RefreshContainersRes)

    def _containers_refreshed(self, result: Result[list[ContainerRecord]]) -> Task:
        self.containers_refreshing = False
        if not result.ok:
            _LOGGER.error("Failed to refresh containers: %s", result.error)
            return Task.none()
        docker_module = self.docker.value
        if docker_module is not None:
            docker_module.containers = tuple(result.value or ())
        return Task.none()

    # --- view ---

    def snapshot(self) -> ScreenState:
        modules = [
            ModuleStatus(name=c.name, status=c.slot.status.value, error=_error_text(c.slot.error))
            for c in self.controllers
        ]
        any_loading = any(c.loading for c in self.controllers)

        docker_module = self.docker.value
        containers = [
            ContainerSummary(id=c.id, name=c.name, image=c.image, state=c.state, ports=list(c.ports))
            for c in (docker_module.containers if docker_module else ())
        ]

        if self.screen == "setup":
            view = "modules"
        elif self.service is None:
            view = "no_service"
        elif not self.service_exists_db:
            view = "pending"
        else:
            view = "alive"

        return ScreenState(
            screen=self.screen,
            view=view,
            modules=modules,
            can_retry=not any_loading and any(c.retry_eligible for c in self.controllers),
            can_continue=all(c.ready for c in self.controllers),
            service=ServiceStatus(
                config=self.service,
                loading=self.service_loading,
                updating=self.service_updating,
                exists_in_store=self.service_exists_db,
                synced=self.service_synced,
                error=self.service_error,
            ),
            containers=containers,
            containers_refreshing=self.containers_refreshing,
        )

    def close(self) -> None:
        for c in self.controllers:
            c.close()
