import uuid
from pathlib import Path

import pytest
from pydantic import ValidationError

from winjet.models import DeviceMapping, PortMapping, RestartPolicy, ServiceConfig, new_service_id


def test_defaults_match_the_documented_table():
    cfg = ServiceConfig()

    assert cfg.image == "dockurr/windows"
    assert cfg.container_name == "windows"
    assert cfg.environment == {"VERSION": "11"}
    assert [d.path_on_host for d in cfg.devices] == ["/dev/kvm", "/dev/net/tun"]
    assert cfg.cap_add == ["NET_ADMIN"]
    assert [(p.private_port, p.public_port, p.protocol) for p in cfg.ports] == [
        (8006, 8006, None),
        (3389, 3389, "tcp"),
        (3389, 3389, "udp"),
    ]
    assert cfg.volumes == [f"{Path.home()}/windows:/storage"]
    assert cfg.restart.name == "always"
    assert cfg.restart.maximum_retry_count is None
    assert cfg.stop_grace_period == "2m"


def test_default_collections_are_not_shared():
    a, b = ServiceConfig(), ServiceConfig()
    a.environment["RAM_SIZE"] = "8G"
    assert b.environment == {"VERSION": "11"}


def test_ids_are_uuid7_and_unique():
    ids = {new_service_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(uuid.UUID(i).version == 7 for i in ids)


def test_ids_are_time_ordered():
    first = uuid.UUID(new_service_id())
    later = uuid.UUID(ServiceConfig().id)
    # The top 48 bits carry the creation time in milliseconds.
    assert first.int >> 80 <= later.int >> 80


def test_config_is_replaced_not_mutated():
    cfg = ServiceConfig()
    with pytest.raises(ValidationError):
        cfg.image = "other"
    changed = cfg.model_copy(update={"image": "other"})
    assert changed.id == cfg.id
    assert cfg.image == "dockurr/windows"


def test_capabilities_are_unique_and_ordered():
    cfg = ServiceConfig(cap_add=["NET_ADMIN", "SYS_ADMIN", "NET_ADMIN"])
    assert cfg.cap_add == ["NET_ADMIN", "SYS_ADMIN"]


@pytest.mark.parametrize("value", ["90s", "2m", "1h30m", "1.5s", "250ms"])
def test_stop_grace_period_accepts_durations(value):
    assert ServiceConfig(stop_grace_period=value).stop_grace_period == value


@pytest.mark.parametrize("value", ["", "soon", "2", "m2"])
def test_stop_grace_period_rejects_garbage(value):
    with pytest.raises(ValidationError):
        ServiceConfig(stop_grace_period=value)


def test_restart_policy_is_a_closed_set():
    with pytest.raises(ValidationError):
        RestartPolicy(name="sometimes")


def test_restart_policy_from_api():
    assert RestartPolicy.from_api(None).name == "always"
    assert RestartPolicy.from_api({"Name": "", "MaximumRetryCount": 0}).name == "no"
    policy = RestartPolicy.from_api({"Name": "on-failure", "MaximumRetryCount": 5})
    assert (policy.name, policy.maximum_retry_count) == ("on-failure", 5)


def test_port_and_device_from_api():
    port = PortMapping.from_api({"IP": "0.0.0.0", "PrivatePort": 3389, "PublicPort": 3389, "Type": "udp"})
    assert (port.private_port, port.public_port, port.protocol) == (3389, 3389, "udp")

    unpublished = PortMapping.from_api({"PrivatePort": 5900, "Type": "tcp"})
    assert unpublished.public_port is None

    dev = DeviceMapping.from_api({"PathOnHost": "/dev/net/tun", "PathInContainer": "", "CgroupPermissions": "rwm"})
    assert dev.path_on_host == "/dev/net/tun"
    assert dev.path_in_container is None
    assert dev.cgroup_permissions == "rwm"
