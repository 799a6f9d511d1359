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
"""Domain models for certificate automation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class OperationKind(str, Enum):
    """Kinds of tracked work against a target."""

    CERTIFICATE_RENEWAL = "certificate_renewal"
    SERVICE_RESTART = "service_restart"
    SSH_TEST = "ssh_test"


class OperationStatus(str, Enum):
    """Lifecycle states for an operation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {OperationStatus.COMPLETED, OperationStatus.FAILED}


ACTIVE_STATUSES = frozenset({OperationStatus.PENDING, OperationStatus.IN_PROGRESS})


class CreatedBy(str, Enum):
    """Who triggered an operation."""

    USER = "user"
    CRON = "cron"
    AUTO = "auto"


class RenewalStep(str, Enum):
    """Steps of the renewal state machine, in execution order."""

    PENDING = "pending"
    GENERATING_CSR = "generating_csr"
    CREATING_ACCOUNT = "creating_account"
    REQUESTING_CERTIFICATE = "requesting_certificate"
    CREATING_DNS_CHALLENGE = "creating_dns_challenge"
    WAITING_DNS_PROPAGATION = "waiting_dns_propagation"
    COMPLETING_VALIDATION = "completing_validation"
    DOWNLOADING_CERTIFICATE = "downloading_certificate"
    UPLOADING_CERTIFICATE = "uploading_certificate"
    COMPLETED = "completed"
    FAILED = "failed"


RENEWAL_STEP_PROGRESS: dict[RenewalStep, int] = {
    RenewalStep.PENDING: 0,
    RenewalStep.GENERATING_CSR: 10,
    RenewalStep.CREATING_ACCOUNT: 15,
    RenewalStep.REQUESTING_CERTIFICATE: 20,
    RenewalStep.CREATING_DNS_CHALLENGE: 30,
    RenewalStep.WAITING_DNS_PROPAGATION: 50,
    RenewalStep.COMPLETING_VALIDATION: 70,
    RenewalStep.DOWNLOADING_CERTIFICATE: 80,
    RenewalStep.UPLOADING_CERTIFICATE: 90,
    RenewalStep.COMPLETED: 100,
}


class ApplicationType(str, Enum):
    """Appliance families with a device adapter."""

    VOS = "vos"
    ISE = "ise"


class Environment(str, Enum):
    """CA environment; values double as artifact directory names."""

    STAGING = "staging"
    PRODUCTION = "prod"


@dataclass
class Operation:
    """Unit of tracked work stored by admission control."""

    id: str
    target_id: str
    kind: OperationKind
    status: OperationStatus
    created_by: CreatedBy
    started_at: str
    progress: int = 0
    message: str = ""
    error: Optional[str] = None
    completed_at: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    logs: list[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def snapshot(self) -> Operation:
        """Detached copy safe to hand out of the store."""
        return replace(self, metadata=dict(self.metadata), logs=list(self.logs))


@dataclass
class Target:
    """Appliance a certificate is issued for and deployed to."""

    target_id: str
    hostname: str
    domain: str
    username: str
    password: str
    alt_names: list[str] = field(default_factory=list)
    application_type: str = ApplicationType.VOS.value
    ssh_port: int = 22
    enable_ssh: bool = True
    auto_restart_service: bool = False
    auto_renew: bool = False

    @property
    def fqdn(self) -> str:
        hostname = (self.hostname or "").strip()
        domain = (self.domain or "").strip()
        if hostname == "*":
            return domain
        if "." in hostname:
            return hostname
        if hostname and domain:
            return f"{hostname}.{domain}"
        return ""

    @property
    def domains(self) -> list[str]:
        """Primary FQDN followed by distinct alternative names."""
        names = [self.fqdn]
        for name in self.alt_names:
            cleaned = name.strip()
            if cleaned and cleaned not in names:
                names.append(cleaned)
        return names


@dataclass
class DomainChallenge:
    """One DNS-01 validation unit for one domain."""

    domain: str
    expected_value: str
    record_id: Optional[str] = None
    verified: bool = False


@dataclass(frozen=True)
class CertificateArtifactSet:
    """Issued certificate material for one domain and environment."""

    domain: str
    environment: Environment
    certificate: str
    chain: str
    full_chain: str
