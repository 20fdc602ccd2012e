from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Protocol, TypeVar

import docker

from . import docker_ops, kvm
from .docker_ops import ContainerRecord
from .state import ServiceStateStore
from .tasks import Result, Task

_LOGGER = logging.getLogger(__name__)

I = TypeVar("I")
T = TypeVar("T")
I_contra = TypeVar("I_contra", contravariant=True)
T_co = TypeVar("T_co", covariant=True)


class BackendAdapter(Protocol[I_contra, T_co]):
    """Anything that can open one backend session."""

    name: str

    def init(self, input: I_contra) -> T_co: ...


class DockerModule:
    """Connected Docker client plus the containers found at startup."""

    def __init__(self, client: docker.DockerClient, containers: list[ContainerRecord], max_workers: int | None = None):
        self.client = client
        self.containers: tuple[ContainerRecord, ...] = tuple(containers)
        self.max_workers = max_workers

    def refresh(self) -> list[ContainerRecord]:
        return docker_ops.enumerate_containers(self.client, max_workers=self.max_workers)

    def find(self, container_id: str) -> ContainerRecord | None:
        for c in self.containers:
            if c.id == container_id:
                return c
        return None

    def close(self) -> None:
        self.client.close()


class StateAdapter:
    name = "State"

    def init(self, data_dir: str | os.PathLike[str]) -> ServiceStateStore:
        return ServiceStateStore.open(data_dir)


class DockerAdapter:
    name = "Docker"

    def __init__(self, max_workers: int | None = None) -> None:
        self.max_workers = max_workers

    def init(self, _: Any = None) -> DockerModule:
        client = docker_ops.connect()
        try:
            containers = docker_ops.enumerate_containers(client, max_workers=self.max_workers)
        except Exception:
            client.close()
            raise
        return DockerModule(client, containers, self.max_workers)


class KVMAdapter:
    name = "KVM"

    def init(self, device: str) -> kvm.KvmHandle:
        return kvm.open_kvm(device)


class SlotStatus(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ModuleSlot(Generic[T]):
    status: SlotStatus = SlotStatus.EMPTY
    value: T | None = None
    error: Exception | None = None

    @classmethod
    def loading(cls) -> ModuleSlot[T]:
        return cls(SlotStatus.LOADING)

    @classmethod
    def ready(cls, value: T) -> ModuleSlot[T]:
        return cls(SlotStatus.READY, value=value)

    @classmethod
    def failed(cls, error: Exception) -> ModuleSlot[T]:
        return cls(SlotStatus.FAILED, error=error)


def _release(value: Any) -> None:
    close = getattr(value, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception as e:
        _LOGGER.warning("Failed to release %r: %s", value, e)


class ModuleController(Generic[I, T]):
    """Lifecycle of one backend module.

    Only the control loop calls into this class. ``load`` and ``loaded`` return
    Tasks for the loop to run; nothing here blocks.
    """

    def __init__(self, adapter: BackendAdapter[I, T]) -> None:
        self.adapter = adapter
        self.slot: ModuleSlot[T] = ModuleSlot()
        self._retired: T | None = None

    @property
    def name(self) -> str:
        return self.adapter.name

    @property
    def value(self) -> T | None:
        return self.slot.value

    @property
    def loading(self) -> bool:
        return self.slot.status is SlotStatus.LOADING

    @property
    def ready(self) -> bool:
        return self.slot.status is SlotStatus.READY

    @property
    def retry_eligible(self) -> bool:
        return self.slot.status is not SlotStatus.READY

    def load(self, input: I, to_msg: Callable[[Result[T]], Any]) -> Task:
        if self.loading:
            _LOGGER.debug("Module %s is already loading; ignoring load request", self.name)
            return Task.none()
        # Keep the live session until its replacement arrives.
        if self.slot.value is not None:
            self._retired = self.slot.value
        self.slot = ModuleSlot.loading()
        _LOGGER.debug("Loading module %s", self.name)
        return Task.perform(self.adapter.init, to_msg, input)

    def loaded(self, result: Result[T], on_success: Callable[[], Task] | None = None) -> Task:
        if not self.loading:
            _LOGGER.warning("Dropping stale load result for module %s", self.name)
            if result.ok:
                _release(result.value)
            return Task.none()

        if self._retired is not None:
            _release(self._retired)
            self._retired = None

        if not result.ok:
            self.slot = ModuleSlot.failed(result.error)
            _LOGGER.error("Failed to load module %s: %s", self.name, result.error)
            return Task.none()

        self.slot = ModuleSlot.ready(result.value)
        _LOGGER.info("Module %s loaded", self.name)
        return on_success() if on_success else Task.none()

    def close(self) -> None:
        for value in (self._retired, self.slot.value):
            if value is not None:
                _release(value)
        self._retired = None
        self.slot = ModuleSlot()
