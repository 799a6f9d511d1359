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
"""DNS-01 challenge creation, propagation checks and cleanup."""

from __future__ import annotations

import base64
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol

from certpilot.app.domain.errors import (
    OperationError,
    ProtocolError,
    VerificationTimeoutError,
)
from certpilot.app.domain.models import DomainChallenge

logger = logging.getLogger(__name__)

ACME_CHALLENGE_LABEL = "_acme-challenge"


def challenge_record_name(domain: str) -> str:
    """TXT owner name for a domain; wildcard labels validate on the base name."""
    base = domain[2:] if domain.startswith("*.") else domain
    return f"{ACME_CHALLENGE_LABEL}.{base.rstrip('.')}"


def dns01_txt_value(key_authorization: str) -> str:
    """base64url(sha256(key_authorization)) without padding."""
    digest = hashlib.sha256(key_authorization.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class TxtRecordHandle:
    """Provider reference to one created TXT record."""

    domain: str
    name: str
    value: str
    record_id: str


class DnsProvider(Protocol):
    """Capability that manages TXT records and checks their visibility."""

    def purge_txt_records(self, domain: str) -> int:
        """Delete leftover challenge records at domain's owner name."""

    def create_txt_record(self, domain: str, value: str) -> TxtRecordHandle:
        """Create the challenge record for domain."""

    def verify_txt_record(self, domain: str, expected_value: str) -> bool:
        """Return True once resolvers serve expected_value for domain."""

    def delete_txt_record(self, handle: TxtRecordHandle) -> None:
        """Remove a record created by create_txt_record."""


@dataclass
class DnsValidationResult:
    """Outcome of one validate() call.

    ``handles`` lists every record created, including on failure, so the
    caller can apply its cleanup policy.
    """

    challenges: list[DomainChallenge] = field(default_factory=list)
    handles: list[TxtRecordHandle] = field(default_factory=list)
    failed_domain: Optional[str] = None
    error: Optional[OperationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(c.verified for c in self.challenges)

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, VerificationTimeoutError)


class DnsChallengeCoordinator:
    """Creates all TXT records first, then polls resolvers for each domain."""

    def __init__(
        self,
        provider: DnsProvider,
        poll_interval: float = 10.0,
        timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if timeout < 0:
            raise ValueError("timeout must be >= 0")
        self.provider = provider
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep

    def validate(
        self,
        domains: Iterable[str],
        get_expected_value: Callable[[str], str],
        on_records_created: Callable[[list[DomainChallenge]], None] | None = None,
    ) -> DnsValidationResult:
        result = DnsValidationResult()
        domains = list(dict.fromkeys(domains))

        # A wildcard and its base name share one owner name, so stale
        # records are cleared once per name before anything is created.
        owners: dict[str, str] = {}
        for domain in domains:
            owners.setdefault(challenge_record_name(domain), domain)
        for name, domain in owners.items():
            try:
                self.provider.purge_txt_records(domain)
            except Exception as exc:
                logger.warning("Could not purge stale TXT records at %s: %s", name, exc)

        for domain in domains:
            try:
                expected = get_expected_value(domain)
                handle = self.provider.create_txt_record(domain, expected)
            except OperationError as exc:
                return self._fail(result, domain, exc)
            except Exception as exc:
                logger.exception("Unexpected error creating TXT record for %s", domain)
                error = ProtocolError(f"Failed to create TXT record for {domain}: {exc}")
                error.__cause__ = exc
                return self._fail(result, domain, error)
            result.handles.append(handle)
            result.challenges.append(
                DomainChallenge(
                    domain=domain, expected_value=expected, record_id=handle.record_id
                )
            )
            logger.info("Created TXT record %s (id=%s)", handle.name, handle.record_id)

        if on_records_created is not None:
            on_records_created(list(result.challenges))

        for challenge in result.challenges:
            error = self._wait_for_propagation(challenge)
            if error is not None:
                return self._fail(result, challenge.domain, error)
        return result

    def _wait_for_propagation(self, challenge: DomainChallenge) -> OperationError | None:
        deadline = self._clock() + self.timeout
        attempt = 0
        while True:
            attempt += 1
            try:
                visible = self.provider.verify_txt_record(
                    challenge.domain, challenge.expected_value
                )
            except Exception as exc:
                logger.warning(
                    "TXT lookup for %s failed (attempt %d): %s",
                    challenge.domain,
                    attempt,
                    exc,
                )
                visible = False

            if visible:
                challenge.verified = True
                logger.info(
                    "TXT record for %s visible after %d attempt(s)",
                    challenge.domain,
                    attempt,
                )
                return None

            remaining = deadline - self._clock()
            if remaining <= 0:
                return VerificationTimeoutError(
                    f"DNS propagation timed out for {challenge.domain} "
                    f"after {self.timeout:g}s ({attempt} attempts)"
                )
            logger.debug(
                "TXT record for %s not visible yet; retrying in %ss",
                challenge.domain,
                self.poll_interval,
            )
            self._sleep(min(self.poll_interval, remaining))

    @staticmethod
    def _fail(
        result: DnsValidationResult, domain: str, error: OperationError
    ) -> DnsValidationResult:
        logger.error("DNS validation failed for %s: %s", domain, error)
        result.failed_domain = domain
        result.error = error
        return result

    def cleanup(self, handles: Iterable[TxtRecordHandle]) -> int:
        """Delete records; failures are logged and skipped. Returns deleted count."""
        deleted = 0
        for handle in handles:
            try:
                self.provider.delete_txt_record(handle)
            except Exception as exc:
                logger.warning(
                    "Failed to delete TXT record %s (id=%s): %s",
                    handle.name,
                    handle.record_id,
                    exc,
                )
                continue
            deleted += 1
            logger.info("Deleted TXT record %s (id=%s)", handle.name, handle.record_id)
        return deleted
