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
"""Simulation device for API-level scaffolding."""

from __future__ import annotations

import os
import time
from threading import Lock

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certpilot.app.application.renewal_engine import DeviceAck
from certpilot.app.domain.models import CertificateArtifactSet, Target


def build_csr(common_name: str, alt_names: list[str]) -> str:
    """Generate a fresh RSA key and CSR for common_name plus alt_names."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    names = [common_name] + [n for n in alt_names if n != common_name]
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in names]), critical=False
        )
        .sign(key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM).decode("ascii")


class SimulatedDevice:
    """Generates CSRs locally and accepts every upload."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.installed: dict[str, CertificateArtifactSet] = {}

    def fetch_csr(self, target: Target) -> str:
        delay_ms = int(os.getenv("CERTPILOT_SIMULATED_DELAY_MS", "0").strip() or "0")
        if delay_ms > 0:
            time.sleep(delay_ms / 1000.0)
        return build_csr(target.fqdn, target.domains[1:])

    def upload_certificate(
        self, target: Target, artifacts: CertificateArtifactSet
    ) -> DeviceAck:
        with self._lock:
            self.installed[target.target_id] = artifacts
        return DeviceAck(accepted=True, detail=f"simulated install on {target.fqdn}")
