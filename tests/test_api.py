import pytest
from fastapi.testclient import TestClient

from winjet.api import create_app
from winjet.errors import ConnectivityError


@pytest.fixture
def booted(loop):
    loop.boot()
    loop.run_until_idle()
    return loop


@pytest.fixture
def client(booted):
    return TestClient(create_app(booted))


def test_screen_reports_modules(client):
    r = client.get("/screen")
    assert r.status_code == 200
    body = r.json()
    assert body["screen"] == "setup"
    assert [m["status"] for m in body["modules"]] == ["ready", "ready", "ready"]
    assert body["can_continue"] is True


def test_finish_setup_then_adopt(client, booted):
    r = client.post("/setup/done")
    assert r.status_code == 202
    booted.run_until_idle()
    assert client.get("/screen").json()["view"] == "no_service"

    assert client.get("/service").status_code == 404

    containers = client.get("/containers").json()
    target = next(c for c in containers if c["name"] == "win10")
    r = client.post("/service/adopt", json={"container_id": target["id"]})
    assert r.status_code == 202
    assert r.json() == {"accepted": True}
    booted.run_until_idle()

    screen = client.get("/screen").json()
    assert screen["view"] == "alive"
    assert screen["service"]["exists_in_store"] is True

    service = client.get("/service").json()
    assert service["container_name"] == "win10"
    assert service["environment"] == {"VERSION": "10"}


def test_adopt_unknown_container_is_404(client):
    r = client.post("/service/adopt", json={"container_id": "nope"})
    assert r.status_code == 404


def test_adopt_requires_container_id(client):
    r = client.post("/service/adopt", json={})
    assert r.status_code == 422


def test_create_with_defaults_and_update(client, booted):
    assert client.put("/service", json={"image": "dockurr/windows"}).status_code == 409

    assert client.post("/service").status_code == 202
    booted.run_until_idle()
    created = client.get("/service").json()
    assert created["image"] == "dockurr/windows"
    assert created["ports"][2] == {"private_port": 3389, "public_port": 3389, "protocol": "udp"}

    r = client.put("/service", json={**created, "stop_grace_period": "30s", "id": "ignored"})
    assert r.status_code == 202
    booted.run_until_idle()

    updated = client.get("/service").json()
    assert updated["id"] == created["id"]
    assert updated["stop_grace_period"] == "30s"


def test_create_rejects_invalid_config(client):
    r = client.post("/service", json={"stop_grace_period": "whenever"})
    assert r.status_code == 422


def test_setup_done_refused_while_modules_missing(loop, adapters):
    def broken(_):
        raise ConnectivityError("KVM", "missing")

    adapters["kvm"].factory = broken
    loop.boot()
    loop.run_until_idle()
    client = TestClient(create_app(loop))

    assert client.post("/setup/done").status_code == 409
    assert client.get("/screen").json()["can_retry"] is True

    adapters["kvm"].factory = lambda device: object()
    assert client.post("/setup/retry").status_code == 202
    loop.run_until_idle()
    assert client.post("/setup/done").status_code == 202


def test_write_is_refused_while_updating(client, booted):
    booted.app.service_updating = True
    booted._publish()
    assert client.post("/service").status_code == 409


def test_refresh_containers(client, booted, docker_client):
    from conftest import make_details, make_summary

    docker_client.api.summaries.append(make_summary("d" * 12, "win-new"))
    docker_client.api.details["d" * 12] = make_details()

    assert client.post("/containers/refresh").status_code == 202
    booted.run_until_idle()
    assert "win-new" in {c["name"] for c in client.get("/containers").json()}


def test_writes_refused_when_record_could_not_be_loaded(client, booted):
    booted.app.service_synced = False
    booted._publish()

    assert client.post("/service").status_code == 409
    assert client.post("/service/adopt", json={"container_id": "a" * 12}).status_code == 409
