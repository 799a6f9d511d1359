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
"""Simulated ACME CA that signs CSRs with an in-process issuer."""

from __future__ import annotations

import datetime
import secrets
from threading import Lock
from uuid import uuid4

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certpilot.app.application.dns_challenge import dns01_txt_value
from certpilot.app.application.renewal_engine import (
    AcmeAccount,
    AcmeChallenge,
    AcmeOrder,
)
from certpilot.app.domain.certificates import csr_domains, load_csr
from certpilot.app.domain.errors import ProtocolError
from certpilot.app.domain.models import Environment


def _build_issuer() -> tuple[rsa.RSAPrivateKey, x509.Certificate]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "certpilot simulated CA")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return key, certificate


class SimulatedAcmeClient:
    """In-memory AcmeClient; orders become valid once every challenge is answered."""

    def __init__(self, environment: Environment = Environment.STAGING, validity_days: int = 90):
        self.environment = environment
        self.validity_days = validity_days
        self._lock = Lock()
        self._accounts: dict[str, AcmeAccount] = {}
        self._thumbprint = secrets.token_urlsafe(32)
        self._issuer_key, self._issuer_cert = _build_issuer()

    def load_account(self, domain: str) -> AcmeAccount | None:
        with self._lock:
            return self._accounts.get(domain)

    def create_account(self, email: str, domain: str) -> AcmeAccount:
        account = AcmeAccount(
            domain=domain,
            environment=self.environment,
            contact=email,
            uri=f"https://acme.invalid/acct/{uuid4().hex[:12]}",
        )
        with self._lock:
            self._accounts[domain] = account
        return account

    def request_certificate(
        self, account: AcmeAccount, csr_pem: str, domains: list[str]
    ) -> AcmeOrder:
        covered = set(csr_domains(csr_pem))
        missing = [d for d in domains if d.lower() not in covered]
        if missing:
            raise ProtocolError(
                f"CSR does not cover requested domain(s): {', '.join(missing)}"
            )
        order_challenges = [
            AcmeChallenge(domain=domain, token=secrets.token_urlsafe(32), handle={"answered": False})
            for domain in domains
        ]
        return AcmeOrder(
            account=account,
            domains=list(domains),
            challenges=order_challenges,
            url=f"https://acme.invalid/order/{uuid4().hex[:12]}",
        )

    def get_challenge_key_authorization(
        self, order: AcmeOrder, challenge: AcmeChallenge
    ) -> str:
        del order
        return dns01_txt_value(f"{challenge.token}.{self._thumbprint}")

    def complete_challenge(self, order: AcmeOrder, challenge: AcmeChallenge) -> None:
        del order
        challenge.handle["answered"] = True

    def wait_for_order_completion(self, order: AcmeOrder) -> AcmeOrder:
        pending = [c.domain for c in order.challenges if not c.handle["answered"]]
        if pending:
            order.status = "invalid"
            raise ProtocolError(f"Challenges not answered for: {', '.join(pending)}")
        order.status = "ready"
        return order

    def finalize_certificate(self, order: AcmeOrder, csr_pem: str) -> str:
        if order.status != "ready":
            raise ProtocolError(f"Order is not ready (status={order.status})")
        csr = load_csr(csr_pem)
        now = datetime.datetime.now(datetime.timezone.utc)
        leaf = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(self._issuer_cert.subject)
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=self.validity_days))
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(d) for d in order.domains]),
                critical=False,
            )
            .sign(self._issuer_key, hashes.SHA256())
        )
        order.status = "valid"
        encoding = serialization.Encoding.PEM
        return (
            leaf.public_bytes(encoding).decode("ascii")
            + self._issuer_cert.public_bytes(encoding).decode("ascii")
        )
