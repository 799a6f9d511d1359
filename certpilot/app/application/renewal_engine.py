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
"""Certificate renewal orchestration.

A renewal walks the linear step sequence of ``RenewalStateMachine``:
CSR, ACME account, order, DNS-01 records, propagation, challenge
completion, download and device upload. Each step boundary is also a
cancellation point. Any error ends the operation as ``failed`` with the
error kind recorded in ``metadata["error_kind"]``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Optional, Protocol

from certpilot.app.application.dns_challenge import (
    DnsChallengeCoordinator,
    DnsValidationResult,
)
from certpilot.app.application.operation_service import Admission, OperationService
from certpilot.app.domain.certificates import load_csr, split_leaf_and_chain
from certpilot.app.domain.errors import (
    ConfigurationError,
    OperationCancelledError,
    OperationError,
    ProtocolError,
)
from certpilot.app.domain.models import (
    RENEWAL_STEP_PROGRESS,
    CertificateArtifactSet,
    CreatedBy,
    Environment,
    Operation,
    OperationKind,
    OperationStatus,
    RenewalStep,
    Target,
)
from certpilot.app.domain.state_machine import RenewalStateMachine

logger = logging.getLogger(__name__)


@dataclass
class AcmeAccount:
    domain: str
    environment: Environment
    contact: str
    uri: str = ""
    handle: Any = None


@dataclass
class AcmeChallenge:
    domain: str
    token: str
    url: str = ""
    handle: Any = None


@dataclass
class AcmeOrder:
    """ACME order plus whatever client state the adapter needs to resume it."""

    account: AcmeAccount
    domains: list[str]
    challenges: list[AcmeChallenge]
    status: str = "pending"
    url: str = ""
    handle: Any = None


@dataclass(frozen=True)
class DeviceAck:
    accepted: bool
    detail: str = ""


class AcmeClient(Protocol):
    """ACME capability, bound to one CA environment."""

    def load_account(self, domain: str) -> AcmeAccount | None:
        """Return the stored account for domain, if any."""

    def create_account(self, email: str, domain: str) -> AcmeAccount:
        """Register and persist a new account."""

    def request_certificate(
        self, account: AcmeAccount, csr_pem: str, domains: list[str]
    ) -> AcmeOrder:
        """Create one order covering every domain."""

    def get_challenge_key_authorization(
        self, order: AcmeOrder, challenge: AcmeChallenge
    ) -> str:
        """Return the TXT value that proves control for challenge."""

    def complete_challenge(self, order: AcmeOrder, challenge: AcmeChallenge) -> None:
        """Tell the CA the challenge is ready to be validated."""

    def wait_for_order_completion(self, order: AcmeOrder) -> AcmeOrder:
        """Poll until the order is ready or valid."""

    def finalize_certificate(self, order: AcmeOrder, csr_pem: str) -> str:
        """Finalize and return the PEM chain, leaf first."""


class Device(Protocol):
    """Appliance capability for CSR retrieval and certificate install."""

    def fetch_csr(self, target: Target) -> str:
        """Ask the appliance to generate a CSR for its identity."""

    def upload_certificate(
        self, target: Target, artifacts: CertificateArtifactSet
    ) -> DeviceAck:
        """Install the issued certificate on the appliance."""


class ArtifactStore(Protocol):
    def load_csr(self, domain: str, environment: Environment) -> str | None:
        """Cached CSR for domain/environment."""

    def save_csr(self, domain: str, environment: Environment, csr_pem: str) -> None:
        """Cache a CSR."""

    def save_certificate(self, artifacts: CertificateArtifactSet) -> None:
        """Write certificate.pem, chain.pem and fullchain.pem."""

    def append_log(self, domain: str, line: str) -> None:
        """Append one line to the domain's renewal log."""


class TargetResolver(Protocol):
    def get(self, target_id: str) -> Target | None:
        """Fetch a target by ID."""


class BackgroundRunner(Protocol):
    def start(self, operation_id: str, target: Callable[[], Any]) -> bool:
        """Run target in the background."""


@dataclass(frozen=True)
class RenewalPolicy:
    environment: Environment = Environment.STAGING
    contact_email: Optional[str] = None
    dns_cleanup_in_staging: bool = False
    order_settle_delay: float = 3.0


@dataclass
class _RenewalRun:
    operation_id: str
    target: Target
    domain: str
    step: RenewalStep = RenewalStep.PENDING
    dns_result: Optional[DnsValidationResult] = None


class RenewalEngine:
    """Runs certificate renewals as admission-controlled background operations."""

    def __init__(
        self,
        operations: OperationService,
        targets: TargetResolver,
        acme: AcmeClient,
        dns: DnsChallengeCoordinator,
        device: Device,
        artifacts: ArtifactStore,
        runner: BackgroundRunner,
        policy: RenewalPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_completed: Callable[[Target, Operation], None] | None = None,
    ):
        self.operations = operations
        self.targets = targets
        self.acme = acme
        self.dns = dns
        self.device = device
        self.artifacts = artifacts
        self.runner = runner
        self.policy = policy or RenewalPolicy()
        self.state_machine = RenewalStateMachine()
        self._sleep = sleep
        self._on_completed = on_completed
        self._account_locks_guard = Lock()
        self._account_locks: dict[str, Lock] = {}

    def start_renewal(
        self, target_id: str, created_by: CreatedBy = CreatedBy.USER
    ) -> Admission:
        """Admit a renewal for target_id and run it in the background."""
        target = self.targets.get(target_id)
        if target is None:
            raise LookupError(f"Target not found: {target_id}")
        if not target.fqdn:
            raise ConfigurationError(
                f"Target {target_id} has no resolvable FQDN (hostname/domain missing)"
            )

        admission = self.operations.start(
            target_id,
            OperationKind.CERTIFICATE_RENEWAL,
            created_by=created_by,
            metadata={
                "step": RenewalStep.PENDING.value,
                "domains": target.domains,
                "environment": self.policy.environment.value,
            },
            message="Certificate renewal queued",
        )
        if admission.admitted:
            operation_id = admission.operation.id
            self.runner.start(operation_id, lambda: self.run(operation_id, target))
        return admission

    def get_status(self, operation_id: str) -> Operation:
        return self.operations.get(operation_id)

    def run(self, operation_id: str, target: Target) -> None:
        """Execute the renewal sequence synchronously."""
        run = _RenewalRun(operation_id=operation_id, target=target, domain=target.fqdn)
        self._log(run, f"Certificate renewal started for {run.domain}")
        try:
            self._execute(run)
        except OperationError as exc:
            self._fail(run, exc, exc.kind)
            return
        except Exception as exc:
            logger.exception("Renewal %s crashed at step %s", operation_id, run.step.value)
            self._fail(run, exc, "internal")
            return

        if self._on_completed is not None:
            try:
                self._on_completed(target, self.operations.get(operation_id))
            except Exception:
                logger.exception("Post-renewal hook failed for %s", run.domain)

    def _execute(self, run: _RenewalRun) -> None:
        env = self.policy.environment
        target = run.target

        self._advance(run, RenewalStep.GENERATING_CSR, "Generating certificate signing request...")
        csr_pem = self.artifacts.load_csr(run.domain, env)
        if csr_pem:
            self._log(run, "Reusing cached certificate signing request")
        else:
            csr_pem = self.device.fetch_csr(target)
            load_csr(csr_pem)
            self.artifacts.save_csr(run.domain, env, csr_pem)
            self._log(run, "Certificate signing request received from device")

        self._advance(run, RenewalStep.CREATING_ACCOUNT, "Loading ACME account...")
        account = self._load_or_create_account(run)

        self._advance(
            run, RenewalStep.REQUESTING_CERTIFICATE, "Requesting certificate order..."
        )
        order = self.acme.request_certificate(account, csr_pem, target.domains)
        self._log(run, f"Order created for {', '.join(order.domains)}")

        self._advance(run, RenewalStep.CREATING_DNS_CHALLENGE, "Creating DNS challenge records...")
        expected = {
            challenge.domain: self.acme.get_challenge_key_authorization(order, challenge)
            for challenge in order.challenges
        }
        try:
            run.dns_result = self.dns.validate(
                list(expected),
                expected.__getitem__,
                on_records_created=lambda _challenges: self._advance(
                    run,
                    RenewalStep.WAITING_DNS_PROPAGATION,
                    "Waiting for DNS propagation...",
                    check_cancel=False,
                ),
            )
            if not run.dns_result.ok:
                raise run.dns_result.error or ProtocolError(
                    f"DNS validation failed for {run.dns_result.failed_domain}"
                )

            self._advance(
                run, RenewalStep.COMPLETING_VALIDATION, "Completing ACME validation..."
            )
            for challenge in order.challenges:
                self.acme.complete_challenge(order, challenge)
            if self.policy.order_settle_delay > 0:
                self._sleep(self.policy.order_settle_delay)
            order = self.acme.wait_for_order_completion(order)
            self._log(run, f"Order status: {order.status}")
        finally:
            self._cleanup_dns(run)

        self._advance(run, RenewalStep.DOWNLOADING_CERTIFICATE, "Downloading certificate...")
        full_chain = self.acme.finalize_certificate(order, csr_pem)
        leaf, chain = split_leaf_and_chain(full_chain)
        artifact_set = CertificateArtifactSet(
            domain=run.domain,
            environment=env,
            certificate=leaf,
            chain=chain,
            full_chain=full_chain,
        )
        self.artifacts.save_certificate(artifact_set)
        self._log(run, "Certificate saved")

        self._advance(run, RenewalStep.UPLOADING_CERTIFICATE, "Uploading certificate to device...")
        ack = self.device.upload_certificate(target, artifact_set)
        if not ack.accepted:
            raise ProtocolError(f"Device rejected certificate: {ack.detail or 'no detail'}")

        self._advance(run, RenewalStep.COMPLETED, "Certificate renewal completed successfully")

    def _advance(
        self,
        run: _RenewalRun,
        step: RenewalStep,
        message: str,
        check_cancel: bool = True,
    ) -> None:
        if check_cancel and self.operations.is_cancel_requested(run.operation_id):
            raise OperationCancelledError("Renewal cancelled by request")
        run.step = self.state_machine.transition(run.step, step)
        status = (
            OperationStatus.COMPLETED
            if step == RenewalStep.COMPLETED
            else OperationStatus.IN_PROGRESS
        )
        self.operations.update(
            run.operation_id,
            status=status,
            progress=RENEWAL_STEP_PROGRESS[step],
            message=message,
            metadata={"step": step.value},
        )
        self._append_domain_log(run, message)
        logger.info("Renewal %s for %s: %s", run.operation_id, run.domain, step.value)

    def _load_or_create_account(self, run: _RenewalRun) -> AcmeAccount:
        with self._account_lock(run.domain):
            account = self.acme.load_account(run.domain)
            if account is not None:
                self._log(run, "Using existing ACME account")
                return account
            if not self.policy.contact_email:
                raise ConfigurationError("ACME contact email is not configured")
            account = self.acme.create_account(self.policy.contact_email, run.domain)
            self._log(run, "Created new ACME account")
            return account

    def _account_lock(self, domain: str) -> Lock:
        with self._account_locks_guard:
            return self._account_locks.setdefault(domain, Lock())

    def _cleanup_dns(self, run: _RenewalRun) -> None:
        result = run.dns_result
        if result is None or not result.handles:
            return
        if (
            self.policy.environment == Environment.STAGING
            and not self.policy.dns_cleanup_in_staging
        ):
            self._log(
                run,
                f"Skipping DNS cleanup in staging; {len(result.handles)} record(s) left for inspection",
            )
            return
        deleted = self.dns.cleanup(result.handles)
        self._log(run, f"DNS cleanup removed {deleted}/{len(result.handles)} record(s)")

    def _fail(self, run: _RenewalRun, exc: BaseException, kind: str) -> None:
        error = str(exc) or exc.__class__.__name__
        logger.error(
            "Renewal %s for %s failed at %s: %s",
            run.operation_id,
            run.domain,
            run.step.value,
            error,
        )
        self.operations.update(
            run.operation_id,
            status=OperationStatus.FAILED,
            error=error,
            log=f"ERROR: {error}",
            metadata={
                "step": RenewalStep.FAILED.value,
                "failed_step": run.step.value,
                "error_kind": kind,
            },
        )
        self._append_domain_log(run, f"ERROR: {error}")

    def _log(self, run: _RenewalRun, line: str) -> None:
        self.operations.update(run.operation_id, log=line)
        self._append_domain_log(run, line)

    def _append_domain_log(self, run: _RenewalRun, line: str) -> None:
        try:
            self.artifacts.append_log(run.domain, line)
        except OSError as exc:
            logger.warning("Could not write renewal log for %s: %s", run.domain, exc)
