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
"""Scheduled renewal of certificates that are close to expiry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Callable, Optional, Protocol

from certpilot.app.application.operation_service import Admission
from certpilot.app.application.renewal_engine import RenewalEngine
from certpilot.app.domain.certificates import certificate_not_after
from certpilot.app.domain.errors import ConfigurationError, ProtocolError
from certpilot.app.domain.models import (
    CertificateArtifactSet,
    CreatedBy,
    Environment,
    Target,
)

logger = logging.getLogger(__name__)

DEFAULT_RENEW_WITHIN_DAYS = 7
DEFAULT_INTERVAL = 24 * 60 * 60.0


class TargetCatalog(Protocol):
    def list(self) -> list[Target]:
        """All registered targets."""


class CertificateSource(Protocol):
    def load_certificate(
        self, domain: str, environment: Environment
    ) -> CertificateArtifactSet | None:
        """Last issued certificate set for domain, if any."""


@dataclass(frozen=True)
class RenewalCandidate:
    """Expiry check result for one auto-renew target."""

    target_id: str
    domain: str
    due: bool
    reason: str
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class SweepResult:
    checked_at: datetime
    candidates: list[RenewalCandidate]
    started: list[Admission]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AutoRenewalScheduler:
    """Periodically renews auto-renew targets whose certificate expires soon.

    Expiry is read from the stored certificate for the configured
    environment. Targets without a stored certificate are reported and
    skipped; their first certificate has to be issued by hand.
    """

    def __init__(
        self,
        renewals: RenewalEngine,
        targets: TargetCatalog,
        certificates: CertificateSource,
        environment: Environment,
        renew_within_days: int = DEFAULT_RENEW_WITHIN_DAYS,
        interval: float = DEFAULT_INTERVAL,
        now: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] | None = None,
    ):
        if renew_within_days < 0:
            raise ValueError("renew_within_days must be >= 0")
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.renewals = renewals
        self.targets = targets
        self.certificates = certificates
        self.environment = environment
        self.renew_within = timedelta(days=renew_within_days)
        self.interval = interval
        self._now = now
        self._sleep = sleep
        self._lock = Lock()
        self._stop = Event()
        self._thread: Thread | None = None
        self.last_result: SweepResult | None = None

    def check_target(self, target: Target) -> RenewalCandidate:
        domain = target.fqdn
        if not domain:
            return RenewalCandidate(target.target_id, domain, False, "no FQDN")
        try:
            artifacts = self.certificates.load_certificate(domain, self.environment)
        except (OSError, ValueError) as exc:
            return RenewalCandidate(
                target.target_id, domain, False, f"certificate unreadable: {exc}"
            )
        if artifacts is None:
            return RenewalCandidate(target.target_id, domain, False, "no stored certificate")
        try:
            expires_at = certificate_not_after(artifacts.certificate)
        except ProtocolError as exc:
            return RenewalCandidate(target.target_id, domain, False, str(exc))

        remaining = expires_at - self._now()
        if remaining <= self.renew_within:
            if remaining.total_seconds() <= 0:
                reason = "expired"
            else:
                reason = f"expires in {remaining.days} day(s)"
            return RenewalCandidate(target.target_id, domain, True, reason, expires_at)
        return RenewalCandidate(
            target.target_id,
            domain,
            False,
            f"valid for {remaining.days} more day(s)",
            expires_at,
        )

    def candidates(self) -> list[RenewalCandidate]:
        return [self.check_target(t) for t in self.targets.list() if t.auto_renew]

    def sweep(self) -> SweepResult:
        """Check every auto-renew target once and start the due renewals."""
        checked_at = self._now()
        candidates = self.candidates()
        started: list[Admission] = []
        for candidate in candidates:
            if not candidate.due:
                logger.info(
                    "Auto-renewal skipped for %s: %s", candidate.domain, candidate.reason
                )
                continue
            try:
                admission = self.renewals.start_renewal(
                    candidate.target_id, created_by=CreatedBy.CRON
                )
            except (LookupError, ConfigurationError) as exc:
                logger.warning("Auto-renewal for %s not started: %s", candidate.domain, exc)
                continue
            if admission.admitted:
                logger.info(
                    "Auto-renewal %s started for %s (%s)",
                    admission.operation.id,
                    candidate.domain,
                    candidate.reason,
                )
                started.append(admission)
            else:
                logger.info("Renewal already running for %s", candidate.domain)

        due = sum(1 for c in candidates if c.due)
        logger.info(
            "Auto-renewal check: %d target(s), %d due, %d started",
            len(candidates),
            due,
            len(started),
        )
        result = SweepResult(checked_at=checked_at, candidates=candidates, started=started)
        self.last_result = result
        return result

    def run_forever(self, stop: Event) -> None:
        """Sweep once per interval until stop is set. The first sweep waits one interval."""
        pause = self._sleep or stop.wait
        while True:
            pause(self.interval)
            if stop.is_set():
                return
            try:
                self.sweep()
            except Exception:
                logger.exception("Auto-renewal check failed")

    def start(self) -> bool:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return False
            self._stop = Event()
            self._thread = Thread(
                target=self.run_forever, args=(self._stop,), name="auto-renewal", daemon=True
            )
            self._thread.start()
        logger.info(
            "Auto-renewal scheduled every %gs for certificates expiring within %d day(s)",
            self.interval,
            self.renew_within.days,
        )
        return True

    def stop(self, timeout: float | None = None) -> None:
        with self._lock:
            thread = self._thread
            self._stop.set()
        if thread is not None:
            thread.join(timeout)
