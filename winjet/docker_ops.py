from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Mapping

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from .errors import ConnectivityError, EnumerationError, InspectError
from .models import DEFAULT_IMAGE, DeviceMapping, PortMapping, RestartPolicy
from .settings import settings

_LOGGER = logging.getLogger(__name__)

# winjet only manages containers derived from this image.
ANCESTOR_IMAGE = DEFAULT_IMAGE


def _container_name(summary: Mapping[str, Any]) -> str:
    names = summary.get("Names") or []
    if not names:
        return "Unknown"
    return names[0].lstrip("/") or "Unknown"


def _ports(summary: Mapping[str, Any]) -> tuple[PortMapping, ...]:
    # The same binding is listed once per address family (0.0.0.0 and ::).
    seen: dict[PortMapping, None] = {}
    for raw in summary.get("Ports") or []:
        seen.setdefault(PortMapping.from_api(raw), None)
    return tuple(seen)


def _volumes(details: Mapping[str, Any]) -> tuple[str, ...]:
    host_config = details.get("HostConfig") or {}
    binds = host_config.get("Binds") or []
    if binds:
        return tuple(binds)

    mounts = details.get("Mounts") or []
    if mounts:
        return tuple(f"{m.get('Source') or m.get('Name')}:{m['Destination']}" for m in mounts)

    config = details.get("Config") or {}
    return tuple((config.get("Volumes") or {}).keys())


@dataclass(frozen=True)
class ContainerRecord:
    """Container summary merged with its inspection."""

    id: str
    name: str
    image: str
    state: str
    ports: tuple[PortMapping, ...]
    env: tuple[str, ...]
    devices: tuple[DeviceMapping, ...]
    cap_add: tuple[str, ...]
    restart: RestartPolicy
    volumes: tuple[str, ...]

    @classmethod
    def merge(cls, summary: Mapping[str, Any], details: Mapping[str, Any]) -> ContainerRecord:
        config = details.get("Config") or {}
        host_config = details.get("HostConfig") or {}
        return cls(
            id=summary["Id"],
            name=_container_name(summary),
            image=summary.get("Image") or "Unknown",
            state=summary.get("State") or "",
            ports=_ports(summary),
            env=tuple(config.get("Env") or ()),
            devices=tuple(DeviceMapping.from_api(d) for d in host_config.get("Devices") or ()),
            cap_add=tuple(host_config.get("CapAdd") or ()),
            restart=RestartPolicy.from_api(host_config.get("RestartPolicy")),
            volumes=_volumes(details),
        )


def connect() -> docker.DockerClient:
    """Open a client from the environment (DOCKER_HOST etc.) and make sure the daemon answers."""
    try:
        client = docker.from_env()
    except DockerException as e:
        raise ConnectivityError("Docker", str(e)) from e
    try:
        client.ping()
    except (DockerException, RequestException) as e:
        client.close()
        raise ConnectivityError("Docker", str(e)) from e
    return client


def list_candidates(client: docker.DockerClient, ancestor: str = ANCESTOR_IMAGE) -> list[dict[str, Any]]:
    try:
        return client.api.containers(all=True, filters={"ancestor": ancestor})
    except (DockerException, RequestException) as e:
        raise EnumerationError(f"Listing containers failed: {e}") from e


def inspect_container(client: docker.DockerClient, summary: Mapping[str, Any]) -> ContainerRecord:
    ident = summary.get("Id") or _container_name(summary)
    try:
        details = client.api.inspect_container(summary["Id"])
        return ContainerRecord.merge(summary, details)
    except (DockerException, RequestException, KeyError, TypeError, ValueError) as e:
        raise InspectError(ident, f"{type(e).__name__}: {e}") from e


def enumerate_containers(
    client: docker.DockerClient,
    ancestor: str = ANCESTOR_IMAGE,
    max_workers: int | None = None,
) -> list[ContainerRecord]:
    """List containers built from ``ancestor`` and inspect them concurrently.

    A container that fails to inspect is logged and left out; only a failure of
    the listing itself raises (EnumerationError). Result order is completion
    order, not listing order.
    """
    summaries = list_candidates(client, ancestor)
    if not summaries:
        return []

    cap = max(1, max_workers or settings.inspect_concurrency)
    records: list[ContainerRecord] = []
    with ThreadPoolExecutor(max_workers=min(cap, len(summaries)), thread_name_prefix="winjet-inspect") as pool:
        futures = [pool.submit(inspect_container, client, s) for s in summaries]
        for fut in as_completed(futures):
            try:
                records.append(fut.result())
            except InspectError as e:
                _LOGGER.warning("Failed to load container information for %s: %s", e.container, e)

    _LOGGER.debug("Enumerated %d of %d containers from %s", len(records), len(summaries), ancestor)
    return records
