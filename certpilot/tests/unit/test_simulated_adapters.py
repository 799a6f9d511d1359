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
"""Unit tests for the simulated ACME, device and shell adapters."""

import pytest
from cryptography import x509

from certpilot.app.domain.certificates import split_pem_chain
from certpilot.app.domain.errors import ProtocolError
from certpilot.app.domain.models import CertificateArtifactSet, Environment, Target
from certpilot.app.infrastructure.simulated_acme_client import SimulatedAcmeClient
from certpilot.app.infrastructure.simulated_device import SimulatedDevice, build_csr
from certpilot.app.infrastructure.simulated_remote_session import (
    SimulatedRemoteSession,
    SimulatedSessionFactory,
)


@pytest.fixture
def target():
    return Target(
        target_id="t1",
        hostname="cucm01",
        domain="example.com",
        username="admin",
        password="secret",
        alt_names=["voice.example.com"],
    )


def test_simulated_acme_issues_after_all_challenges_answered(target):
    acme = SimulatedAcmeClient()
    account = acme.create_account("ops@example.com", target.fqdn)
    csr_pem = build_csr(target.fqdn, target.domains[1:])
    order = acme.request_certificate(account, csr_pem, target.domains)

    acme.complete_challenge(order, order.challenges[0])
    with pytest.raises(ProtocolError, match="voice.example.com"):
        acme.wait_for_order_completion(order)

    for challenge in order.challenges:
        acme.complete_challenge(order, challenge)
    acme.wait_for_order_completion(order)
    pem = acme.finalize_certificate(order, csr_pem)

    leaf_pem, issuer_pem = split_pem_chain(pem)
    leaf = x509.load_pem_x509_certificate(leaf_pem.encode("ascii"))
    issuer = x509.load_pem_x509_certificate(issuer_pem.encode("ascii"))
    san = leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == target.domains
    assert leaf.issuer == issuer.subject
    assert order.status == "valid"
    assert acme.load_account(target.fqdn) is account


def test_simulated_acme_refuses_finalize_before_ready(target):
    acme = SimulatedAcmeClient()
    account = acme.create_account("ops@example.com", target.fqdn)
    csr_pem = build_csr(target.fqdn, [])
    order = acme.request_certificate(account, csr_pem, [target.fqdn])

    with pytest.raises(ProtocolError, match="not ready"):
        acme.finalize_certificate(order, csr_pem)


def test_simulated_device_records_installs(target):
    device = SimulatedDevice()
    artifacts = CertificateArtifactSet(
        domain=target.fqdn,
        environment=Environment.STAGING,
        certificate="LEAF",
        chain="",
        full_chain="LEAF",
    )

    assert "BEGIN CERTIFICATE REQUEST" in device.fetch_csr(target)
    ack = device.upload_certificate(target, artifacts)

    assert ack.accepted is True
    assert device.installed == {"t1": artifacts}


def test_simulated_shell_answers_banner_and_commands():
    session = SimulatedRemoteSession("cucm01.example.com")

    assert session.receive().endswith("admin:")
    session.send("show myself\r\n")
    assert session.receive() == "show myself\r\n"
    assert session.receive().endswith("admin:")
    assert session.receive() == ""


def test_session_factory_reads_delay_from_environment(monkeypatch, target):
    monkeypatch.setenv("CERTPILOT_SIMULATED_DELAY_MS", "7")

    session = SimulatedSessionFactory().open(target)

    assert session.delay_ms == 7
    assert session.hostname == "cucm01.example.com"
