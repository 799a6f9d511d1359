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
"""FastAPI entrypoint for certificate automation."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Query
from fastapi import WebSocket, WebSocketDisconnect

from certpilot.app.api.schemas import (
    ActiveOperationResponse,
    AutoRenewalRunResponse,
    CandidateResponse,
    CleanupResponse,
    OperationResponse,
    StartOperationResponse,
    TargetRequest,
    TargetResponse,
)
from certpilot.app.application.auto_renewal import AutoRenewalScheduler, RenewalCandidate
from certpilot.app.application.command_streaming import CommandStreamingCoordinator
from certpilot.app.application.dns_challenge import DnsChallengeCoordinator, DnsProvider
from certpilot.app.application.operation_service import Admission, OperationService
from certpilot.app.application.remote_operations import RemoteOperations, SessionFactory
from certpilot.app.application.renewal_engine import (
    AcmeClient,
    Device,
    RenewalEngine,
    RenewalPolicy,
)
from certpilot.app.config import Settings, load_settings
from certpilot.app.domain.errors import ConfigurationError
from certpilot.app.domain.models import (
    ApplicationType,
    CreatedBy,
    Operation,
    OperationKind,
    Target,
)
from certpilot.app.infrastructure.device_router import DeviceRouter
from certpilot.app.infrastructure.file_artifact_store import FileArtifactStore
from certpilot.app.infrastructure.in_memory_control_store import InMemoryControlStore
from certpilot.app.infrastructure.in_memory_operation_store import InMemoryOperationStore
from certpilot.app.infrastructure.in_memory_progress_store import InMemoryProgressStore
from certpilot.app.infrastructure.in_memory_target_store import InMemoryTargetStore
from certpilot.app.infrastructure.run_coordinator import RunCoordinator
from certpilot.app.infrastructure.simulated_acme_client import SimulatedAcmeClient
from certpilot.app.infrastructure.simulated_device import SimulatedDevice
from certpilot.app.infrastructure.simulated_dns_provider import SimulatedDnsProvider
from certpilot.app.infrastructure.simulated_remote_session import SimulatedSessionFactory

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Wired application graph."""

    settings: Settings
    targets: InMemoryTargetStore
    operations: OperationService
    progress: InMemoryProgressStore
    runner: RunCoordinator
    artifacts: FileArtifactStore
    renewals: RenewalEngine
    remote: RemoteOperations
    auto_renewal: AutoRenewalScheduler


def _build_acme(settings: Settings, artifacts: FileArtifactStore) -> AcmeClient:
    if settings.acme_mode in ("letsencrypt", "zerossl"):
        from certpilot.app.infrastructure.acme_library_client import (
            ZEROSSL_DIRECTORY,
            AcmeLibraryClient,
        )

        directory_url = settings.acme_directory_url
        if directory_url is None and settings.acme_mode == "zerossl":
            directory_url = ZEROSSL_DIRECTORY
        return AcmeLibraryClient(
            store=artifacts,
            environment=settings.environment,
            directory_url=directory_url,
            order_timeout=settings.order_timeout,
            eab_kid=settings.acme_eab_kid,
            eab_hmac_key=settings.acme_eab_hmac_key,
        )
    return SimulatedAcmeClient(environment=settings.environment)


def _build_dns(settings: Settings) -> DnsProvider:
    if settings.dns_mode == "cloudflare":
        from certpilot.app.infrastructure.cloudflare_dns_provider import (
            CloudflareDnsProvider,
        )

        return CloudflareDnsProvider(
            api_token=settings.cloudflare_api_token,
            zone_id=settings.cloudflare_zone_id,
            nameservers=settings.dns_nameservers,
        )
    return SimulatedDnsProvider()


def _build_device(settings: Settings, artifacts: FileArtifactStore) -> Device:
    if settings.device_mode == "live":
        from certpilot.app.infrastructure.ise_device import IseDevice
        from certpilot.app.infrastructure.vos_device import VosDevice

        return DeviceRouter(
            {
                ApplicationType.VOS.value: VosDevice(),
                ApplicationType.ISE.value: IseDevice(keys=artifacts),
            }
        )
    simulated = SimulatedDevice()
    return DeviceRouter({kind.value: simulated for kind in ApplicationType})


def _build_sessions(settings: Settings) -> SessionFactory:
    if settings.session_mode == "netmiko":
        from certpilot.app.infrastructure.netmiko_remote_session import (
            NetmikoSessionFactory,
        )

        return NetmikoSessionFactory(device_type=settings.ssh_device_type)
    return SimulatedSessionFactory()


def build_services(settings: Settings) -> Services:
    targets = InMemoryTargetStore()
    progress = InMemoryProgressStore()
    runner = RunCoordinator()
    artifacts = FileArtifactStore(settings.accounts_dir)
    operations = OperationService(
        repository=InMemoryOperationStore(),
        progress_sink=progress,
        control_store=InMemoryControlStore(),
    )
    remote = RemoteOperations(
        operations=operations,
        targets=targets,
        sessions=_build_sessions(settings),
        streaming=CommandStreamingCoordinator(),
        runner=runner,
        artifacts=artifacts,
        restart_command=settings.restart_command,
        restart_timeout=settings.restart_timeout,
    )

    def restart_after_renewal(target: Target, operation: Operation) -> None:
        if not target.auto_restart_service:
            return
        if not target.enable_ssh or target.application_type != ApplicationType.VOS.value:
            logger.info("Automatic restart not available for %s; skipping", target.target_id)
            return
        admission = remote.start_service_restart(target.target_id, created_by=CreatedBy.AUTO)
        if admission.admitted:
            logger.info(
                "Scheduled service restart %s after renewal %s",
                admission.operation.id,
                operation.id,
            )
        else:
            logger.info(
                "Service restart already running for %s; skipping automatic restart",
                target.target_id,
            )

    renewals = RenewalEngine(
        operations=operations,
        targets=targets,
        acme=_build_acme(settings, artifacts),
        dns=DnsChallengeCoordinator(
            _build_dns(settings),
            poll_interval=settings.dns_poll_interval,
            timeout=settings.dns_timeout,
        ),
        device=_build_device(settings, artifacts),
        artifacts=artifacts,
        runner=runner,
        policy=RenewalPolicy(
            environment=settings.environment,
            contact_email=settings.acme_email,
            dns_cleanup_in_staging=settings.dns_cleanup_in_staging,
            order_settle_delay=settings.order_settle_delay,
        ),
        on_completed=restart_after_renewal,
    )
    auto_renewal = AutoRenewalScheduler(
        renewals=renewals,
        targets=targets,
        certificates=artifacts,
        environment=settings.environment,
        renew_within_days=settings.auto_renew_within_days,
        interval=settings.auto_renew_interval,
    )
    return Services(
        settings=settings,
        targets=targets,
        operations=operations,
        progress=progress,
        runner=runner,
        artifacts=artifacts,
        renewals=renewals,
        remote=remote,
        auto_renewal=auto_renewal,
    )


settings = load_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
)
services = build_services(settings)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    scheduler = services.auto_renewal
    if services.settings.auto_renew_enabled:
        scheduler.start()
    try:
        yield
    finally:
        scheduler.stop(timeout=5)


app = FastAPI(
    title="Certificate Automation for Network Appliances",
    version="0.1.0",
    lifespan=lifespan,
)


def to_operation_response(operation: Operation) -> OperationResponse:
    """Convert domain model to API response."""
    return OperationResponse(
        id=operation.id,
        target_id=operation.target_id,
        kind=operation.kind.value,
        status=operation.status.value,
        progress=operation.progress,
        message=operation.message,
        created_by=operation.created_by.value,
        started_at=operation.started_at,
        completed_at=operation.completed_at,
        error=operation.error,
        metadata=operation.metadata,
        logs=operation.logs,
    )


def to_target_response(target: Target) -> TargetResponse:
    return TargetResponse(
        target_id=target.target_id,
        hostname=target.hostname,
        domain=target.domain,
        fqdn=target.fqdn,
        username=target.username,
        alt_names=target.alt_names,
        application_type=target.application_type,
        ssh_port=target.ssh_port,
        enable_ssh=target.enable_ssh,
        auto_restart_service=target.auto_restart_service,
        auto_renew=target.auto_renew,
    )


def _to_start_response(admission: Admission) -> StartOperationResponse:
    return StartOperationResponse(
        operation=to_operation_response(admission.operation),
        already_running=not admission.admitted,
    )


def _start(action, target_id: str) -> StartOperationResponse:
    try:
        admission = action(target_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ConfigurationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _to_start_response(admission)


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health endpoint."""
    return {"status": "ok"}


@app.post("/api/targets", response_model=TargetResponse)
def register_target(payload: TargetRequest) -> TargetResponse:
    """Register or replace a target appliance."""
    target = Target(
        target_id=payload.target_id or str(uuid4()),
        hostname=payload.hostname,
        domain=payload.domain,
        username=payload.username,
        password=payload.password,
        alt_names=payload.alt_names,
        application_type=payload.application_type.value,
        ssh_port=payload.ssh_port,
        enable_ssh=payload.enable_ssh,
        auto_restart_service=payload.auto_restart_service,
        auto_renew=payload.auto_renew,
    )
    if not target.fqdn:
        raise HTTPException(status_code=400, detail="hostname and domain do not form an FQDN")
    services.targets.save(target)
    return to_target_response(target)


@app.get("/api/targets", response_model=list[TargetResponse])
def list_targets() -> list[TargetResponse]:
    return [to_target_response(t) for t in services.targets.list()]


@app.get("/api/targets/{target_id}", response_model=TargetResponse)
def get_target(target_id: str) -> TargetResponse:
    target = services.targets.get(target_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Target not found")
    return to_target_response(target)


@app.post("/api/targets/{target_id}/renewals", response_model=StartOperationResponse)
def start_renewal(target_id: str) -> StartOperationResponse:
    """Start a certificate renewal, or return the one already running."""
    return _start(services.renewals.start_renewal, target_id)


@app.post("/api/targets/{target_id}/service-restart", response_model=StartOperationResponse)
def start_service_restart(target_id: str) -> StartOperationResponse:
    """Restart the appliance web service over SSH."""
    return _start(services.remote.start_service_restart, target_id)


@app.post("/api/targets/{target_id}/ssh-test", response_model=StartOperationResponse)
def start_ssh_test(target_id: str) -> StartOperationResponse:
    return _start(services.remote.start_ssh_test, target_id)


@app.get(
    "/api/targets/{target_id}/operations/active", response_model=ActiveOperationResponse
)
def active_operation(
    target_id: str, kind: OperationKind = OperationKind.CERTIFICATE_RENEWAL
) -> ActiveOperationResponse:
    """Return the in-flight operation of the given kind, if any."""
    operation = services.operations.check_active(target_id, kind)
    if operation is None:
        return ActiveOperationResponse(active=False, operation=None)
    return ActiveOperationResponse(active=True, operation=to_operation_response(operation))


@app.get("/api/operations/{operation_id}", response_model=OperationResponse)
def get_operation(operation_id: str) -> OperationResponse:
    try:
        operation = services.renewals.get_status(operation_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return to_operation_response(operation)


@app.post("/api/operations/{operation_id}/cancel", response_model=OperationResponse)
def cancel_operation(operation_id: str) -> OperationResponse:
    """Request cooperative cancellation; takes effect at the next step boundary."""
    try:
        operation = services.operations.request_cancel(operation_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_operation_response(operation)


@app.post("/api/operations/cleanup", response_model=CleanupResponse)
def cleanup_operations(
    max_age_minutes: Optional[int] = Query(default=None, ge=0)
) -> CleanupResponse:
    """Delete finished operations older than max_age_minutes."""
    age = (
        services.settings.operation_retention_minutes
        if max_age_minutes is None
        else max_age_minutes
    )
    removed = services.operations.cleanup(age)
    return CleanupResponse(removed=removed, max_age_minutes=age)


def to_candidate_response(candidate: RenewalCandidate) -> CandidateResponse:
    return CandidateResponse(
        target_id=candidate.target_id,
        domain=candidate.domain,
        due=candidate.due,
        reason=candidate.reason,
        expires_at=candidate.expires_at.isoformat() if candidate.expires_at else None,
    )


@app.get("/api/auto-renewal/candidates", response_model=list[CandidateResponse])
def auto_renewal_candidates() -> list[CandidateResponse]:
    """Expiry check for every auto-renew target, without starting anything."""
    return [to_candidate_response(c) for c in services.auto_renewal.candidates()]


@app.post("/api/auto-renewal/run", response_model=AutoRenewalRunResponse)
def run_auto_renewal() -> AutoRenewalRunResponse:
    """Run the scheduled expiry check now."""
    result = services.auto_renewal.sweep()
    return AutoRenewalRunResponse(
        checked_at=result.checked_at.isoformat(),
        candidates=[to_candidate_response(c) for c in result.candidates],
        started=[to_operation_response(a.operation) for a in result.started],
    )


@app.websocket("/ws/targets/{target_id}")
async def ws_target_progress(
    websocket: WebSocket, target_id: str, since: Optional[int] = None
) -> None:
    """Stream operation updates for a target, from ``since`` or from now."""
    await websocket.accept()
    progress = services.progress
    cursor = progress.event_count(target_id) if since is None else max(0, since)
    try:
        while True:
            events, cursor = progress.read_since(target_id, cursor)
            for event in events:
                payload = to_operation_response(event.operation).model_dump()
                await websocket.send_json(
                    {
                        "type": "operation_update",
                        "target_id": event.target_id,
                        "timestamp": event.timestamp,
                        "operation": payload,
                    }
                )
            await asyncio.sleep(0.2)
    except WebSocketDisconnect:
        return


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
