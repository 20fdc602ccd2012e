import os as _os
import sys
import threading
from typing import Any, Callable

import pytest
from docker.errors import APIError, NotFound

# Ensure project root is importable (so `import cli` works without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from winjet.app import App  # noqa: E402
from winjet.modules import DockerModule  # noqa: E402
from winjet.runtime import ControlLoop  # noqa: E402


def make_summary(cid: str, name: str, image: str = "dockurr/windows", ports: list[dict] | None = None) -> dict:
    """Shape of one entry of GET /containers/json."""
    return {
        "Id": cid,
        "Names": [f"/{name}"],
        "Image": image,
        "State": "running",
        "Ports": ports
        if ports is not None
        else [
            {"IP": "0.0.0.0", "PrivatePort": 8006, "PublicPort": 8006, "Type": "tcp"},
            {"IP": "::", "PrivatePort": 8006, "PublicPort": 8006, "Type": "tcp"},
        ],
    }


def make_details(
    env: list[str] | None = None,
    binds: list[str] | None = None,
    restart: dict | None = None,
    cap_add: list[str] | None = None,
) -> dict:
    """Shape of GET /containers/{id}/json, trimmed to what winjet reads."""
    return {
        "Config": {"Env": env if env is not None else ["VERSION=\"11\"", "RAM_SIZE=\"8G\"", "PATH=/usr/bin"]},
        "HostConfig": {
            "Binds": binds if binds is not None else ["/home/me/windows:/storage"],
            "Devices": [{"PathOnHost": "/dev/kvm", "PathInContainer": "/dev/kvm", "CgroupPermissions": "rwm"}],
            "CapAdd": cap_add if cap_add is not None else ["NET_ADMIN"],
            "RestartPolicy": restart if restart is not None else {"Name": "always", "MaximumRetryCount": 0},
        },
        "Mounts": [],
    }


class FakeDockerAPI:
    """Stands in for ``DockerClient.api`` (docker.APIClient)."""

    def __init__(
        self,
        summaries: list[dict] | None = None,
        details: dict[str, dict] | None = None,
        failing: set[str] | None = None,
        list_error: Exception | None = None,
    ):
        self.summaries = summaries or []
        self.details = details or {}
        self.failing = failing or set()
        self.list_error = list_error
        self.list_calls: list[dict] = []
        self.inspected: list[str] = []
        self._lock = threading.Lock()

    def containers(self, all: bool = False, filters: dict | None = None) -> list[dict]:
        self.list_calls.append({"all": all, "filters": filters})
        if self.list_error is not None:
            raise self.list_error
        return [dict(s) for s in self.summaries]

    def inspect_container(self, container_id: str) -> dict:
        with self._lock:
            self.inspected.append(container_id)
        if container_id in self.failing:
            raise NotFound(f"No such container: {container_id}")
        if container_id not in self.details:
            raise APIError(f"inspect failed for {container_id}")
        return self.details[container_id]


class FakeDockerClient:
    def __init__(self, api: FakeDockerAPI | None = None):
        self.api = api or FakeDockerAPI()
        self.closed = False

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self.closed = True


class FakeHandle:
    def __init__(self, label: str = "handle"):
        self.label = label
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeAdapter:
    """Adapter whose init is scripted by ``factory``; ``gate`` holds init until set."""

    def __init__(self, name: str, factory: Callable[[Any], Any]):
        self.name = name
        self.factory = factory
        self.calls = 0
        self.gate: threading.Event | None = None

    def init(self, input: Any) -> Any:
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        return self.factory(input)


@pytest.fixture
def docker_client() -> FakeDockerClient:
    api = FakeDockerAPI(
        summaries=[make_summary("a" * 12, "windows"), make_summary("b" * 12, "win10")],
        details={"a" * 12: make_details(), "b" * 12: make_details(env=["VERSION=\"10\""])},
    )
    return FakeDockerClient(api)


@pytest.fixture
def adapters(docker_client):
    from winjet.docker_ops import enumerate_containers
    from winjet.modules import StateAdapter

    return {
        "state": StateAdapter(),
        "docker": FakeAdapter("Docker", lambda _: DockerModule(docker_client, enumerate_containers(docker_client))),
        "kvm": FakeAdapter("KVM", lambda device: FakeHandle(device)),
    }


@pytest.fixture
def loop(tmp_path, adapters):
    app = App(
        tmp_path,
        kvm_device="/dev/kvm",
        state_adapter=adapters["state"],
        docker_adapter=adapters["docker"],
        kvm_adapter=adapters["kvm"],
    )
    ctl = ControlLoop(app, max_workers=4)
    yield ctl
    ctl.close()
