from __future__ import annotations

import re
import secrets
import time
import uuid
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_IMAGE = "dockurr/windows"
DEFAULT_CONTAINER_NAME = "windows"
DEFAULT_STOP_GRACE_PERIOD = "2m"

RestartPolicyName = Literal["no", "always", "on-failure", "unless-stopped"]
PortProtocol = Literal["tcp", "udp", "sctp"]

DURATION_RE = re.compile(r"^(\d+(\.\d+)?(ns|us|ms|s|m|h))+$")


def new_service_id() -> str:
    """Return a fresh UUIDv7 string (48-bit unix millis prefix, so ids sort by creation time)."""
    millis = time.time_ns() // 1_000_000
    value = (millis & ((1 << 48) - 1)) << 80 | secrets.randbits(80)
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return str(uuid.UUID(int=value))


def default_volumes() -> list[str]:
    return [f"{Path.home()}/windows:/storage"]


class DeviceMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    path_on_host: str
    path_in_container: str | None = None
    cgroup_permissions: str | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> DeviceMapping:
        return cls(
            path_on_host=data["PathOnHost"],
            path_in_container=data.get("PathInContainer") or None,
            cgroup_permissions=data.get("CgroupPermissions") or None,
        )


class PortMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    private_port: int = Field(..., ge=1, le=65535)
    public_port: int | None = Field(None, ge=1, le=65535)
    protocol: PortProtocol | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> PortMapping:
        return cls(
            private_port=data["PrivatePort"],
            public_port=data.get("PublicPort") or None,
            protocol=data.get("Type") or None,
        )


class RestartPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: RestartPolicyName = "always"
    maximum_retry_count: int | None = Field(None, ge=0)

    @classmethod
    def from_api(cls, data: Mapping[str, Any] | None) -> RestartPolicy:
        if not data:
            return cls()
        # Docker reports "" for containers created without a policy.
        name = data.get("Name") or "no"
        retries = data.get("MaximumRetryCount") or None
        return cls(name=name, maximum_retry_count=retries)


def _default_environment() -> dict[str, Any]:
    return {"VERSION": "11"}


def _default_devices() -> list[DeviceMapping]:
    return [DeviceMapping(path_on_host="/dev/kvm"), DeviceMapping(path_on_host="/dev/net/tun")]


def _default_ports() -> list[PortMapping]:
    return [
        PortMapping(private_port=8006, public_port=8006),
        PortMapping(private_port=3389, public_port=3389, protocol="tcp"),
        PortMapping(private_port=3389, public_port=3389, protocol="udp"),
    ]


class ServiceConfig(BaseModel):
    """The one service record winjet manages.

    Instances are frozen: edits go through ``model_copy(update=...)`` and the
    result replaces the previous config wholesale.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_service_id)
    image: str = DEFAULT_IMAGE
    container_name: str = DEFAULT_CONTAINER_NAME
    environment: dict[str, Any] = Field(default_factory=_default_environment)
    devices: list[DeviceMapping] = Field(default_factory=_default_devices)
    cap_add: list[str] = Field(default_factory=lambda: ["NET_ADMIN"])
    ports: list[PortMapping] = Field(default_factory=_default_ports)
    volumes: list[str] = Field(default_factory=default_volumes)
    restart: RestartPolicy = Field(default_factory=RestartPolicy)
    stop_grace_period: str = DEFAULT_STOP_GRACE_PERIOD

    @field_validator("cap_add")
    @classmethod
    def _unique_capabilities(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @field_validator("stop_grace_period")
    @classmethod
    def _valid_duration(cls, v: str) -> str:
        if not DURATION_RE.match(v):
            raise ValueError("stop_grace_period must be a duration such as '90s', '2m' or '1h30m'.")
        return v
