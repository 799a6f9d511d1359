# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""API-level tests against the simulated adapters."""

import pytest
from fastapi.testclient import TestClient

import certpilot.app.api.main as api_main
from certpilot.app.api.main import app
from certpilot.app.config import Settings
from certpilot.app.domain.models import CertificateArtifactSet, Environment

TARGET = {
    "target_id": "cucm01",
    "hostname": "cucm01",
    "domain": "example.com",
    "username": "admin",
    "password": "secret",
    "alt_names": ["voice.example.com"],
}


@pytest.fixture
def client(tmp_path, monkeypatch):
    services = api_main.build_services(
        Settings(
            accounts_dir=str(tmp_path),
            acme_email="ops@example.com",
            order_settle_delay=0,
            dns_poll_interval=0.1,
        )
    )
    monkeypatch.setattr(api_main, "services", services)
    return TestClient(app)


def register(client, **overrides):
    response = client.post("/api/targets", json={**TARGET, **overrides})
    assert response.status_code == 200
    return response.json()


def wait_for(operation_id):
    assert api_main.services.runner.wait(operation_id, timeout=30.0) is True


def test_health_endpoint(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_target_registration_hides_password(client):
    body = register(client)

    assert body["fqdn"] == "cucm01.example.com"
    assert "password" not in body
    assert [t["target_id"] for t in client.get("/api/targets").json()] == ["cucm01"]
    assert client.get("/api/targets/cucm01").json()["alt_names"] == ["voice.example.com"]
    assert client.get("/api/targets/missing").status_code == 404


def test_target_without_fqdn_is_rejected(client):
    response = client.post("/api/targets", json={**TARGET, "domain": ""})

    assert response.status_code == 400


def test_renewal_runs_to_completion(client, tmp_path):
    register(client)

    response = client.post("/api/targets/cucm01/renewals")
    assert response.status_code == 200
    payload = response.json()
    assert payload["already_running"] is False
    operation_id = payload["operation"]["id"]
    assert payload["operation"]["kind"] == "certificate_renewal"

    wait_for(operation_id)

    operation = client.get(f"/api/operations/{operation_id}").json()
    assert operation["status"] == "completed"
    assert operation["progress"] == 100
    assert operation["metadata"]["step"] == "completed"
    assert (tmp_path / "cucm01.example.com" / "staging" / "fullchain.pem").is_file()
    active = client.get("/api/targets/cucm01/operations/active").json()
    assert active == {"active": False, "operation": None}


def test_auto_restart_follows_successful_renewal(client):
    register(client, auto_restart_service=True)

    operation_id = client.post("/api/targets/cucm01/renewals").json()["operation"]["id"]
    wait_for(operation_id)

    restart = None
    for operation in api_main.services.operations.repository.list("cucm01"):
        if operation.kind.value == "service_restart":
            restart = operation
    assert restart is not None
    assert restart.created_by.value == "auto"
    wait_for(restart.id)
    assert api_main.services.operations.get(restart.id).status.value == "completed"


def test_start_on_unknown_target_is_404(client):
    for action in ("renewals", "service-restart", "ssh-test"):
        assert client.post(f"/api/targets/missing/{action}").status_code == 404


def test_remote_actions_rejected_when_ssh_disabled(client):
    register(client, enable_ssh=False)

    response = client.post("/api/targets/cucm01/service-restart")

    assert response.status_code == 400
    assert "SSH is disabled" in response.json()["detail"]


def test_ssh_test_completes(client):
    register(client)

    operation_id = client.post("/api/targets/cucm01/ssh-test").json()["operation"]["id"]
    wait_for(operation_id)

    operation = client.get(f"/api/operations/{operation_id}").json()
    assert operation["status"] == "completed"
    assert operation["kind"] == "ssh_test"


def test_active_operation_and_duplicate_start(client):
    register(client)
    api_main.services.runner.start = lambda operation_id, target: True

    first = client.post("/api/targets/cucm01/renewals").json()
    second = client.post("/api/targets/cucm01/renewals").json()

    assert second["already_running"] is True
    assert second["operation"]["id"] == first["operation"]["id"]
    active = client.get(
        "/api/targets/cucm01/operations/active", params={"kind": "certificate_renewal"}
    ).json()
    assert active["active"] is True
    assert active["operation"]["id"] == first["operation"]["id"]


def test_cancel_and_cleanup(client):
    register(client)
    api_main.services.runner.start = lambda operation_id, target: True
    operation_id = client.post("/api/targets/cucm01/renewals").json()["operation"]["id"]

    assert client.post(f"/api/operations/{operation_id}/cancel").status_code == 200
    assert api_main.services.operations.is_cancel_requested(operation_id) is True
    assert client.post("/api/operations/missing/cancel").status_code == 404

    response = client.post("/api/operations/cleanup", params={"max_age_minutes": 0})
    assert response.json() == {"removed": 0, "max_age_minutes": 0}
    assert client.post("/api/operations/cleanup").json()["max_age_minutes"] == 60
    assert client.post("/api/operations/cleanup", params={"max_age_minutes": -1}).status_code == 422


def test_unknown_operation_is_404(client):
    assert client.get("/api/operations/nope").status_code == 404


def test_ise_target_renews_through_device_router(client):
    register(client, target_id="ise01", hostname="ise01", application_type="ise")

    operation_id = client.post("/api/targets/ise01/renewals").json()["operation"]["id"]
    wait_for(operation_id)

    assert client.get(f"/api/operations/{operation_id}").json()["status"] == "completed"
    assert client.get("/api/targets/ise01").json()["application_type"] == "ise"


def test_unknown_application_type_is_rejected(client):
    response = client.post("/api/targets", json={**TARGET, "application_type": "fortigate"})

    assert response.status_code == 422


def test_auto_renewal_run_renews_expiring_certificate(client, make_certificate):
    register(client, auto_renew=True)
    register(client, target_id="manual", hostname="cucm02")

    candidates = client.get("/api/auto-renewal/candidates").json()
    assert candidates == [
        {
            "target_id": "cucm01",
            "domain": "cucm01.example.com",
            "due": False,
            "reason": "no stored certificate",
            "expires_at": None,
        }
    ]

    expiring = make_certificate("cucm01.example.com")
    api_main.services.artifacts.save_certificate(
        CertificateArtifactSet(
            domain="cucm01.example.com",
            environment=Environment.STAGING,
            certificate=expiring,
            chain="",
            full_chain=expiring,
        )
    )

    response = client.post("/api/auto-renewal/run")
    assert response.status_code == 200
    body = response.json()
    assert [c["due"] for c in body["candidates"]] == [True]
    assert len(body["started"]) == 1
    started = body["started"][0]
    assert started["created_by"] == "cron"
    assert started["target_id"] == "cucm01"

    wait_for(started["id"])
    assert client.get(f"/api/operations/{started['id']}").json()["status"] == "completed"
    after = client.get("/api/auto-renewal/candidates").json()
    assert after[0]["due"] is False
    assert after[0]["reason"].startswith("valid for")
