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
"""Unit tests for the VOS REST device adapter."""

import pytest
import requests

from certpilot.app.domain.errors import ProtocolError, TransportError
from certpilot.app.domain.models import CertificateArtifactSet, Environment, Target
from certpilot.app.infrastructure.vos_device import VosDevice

CERTMGR = "https://cucm01.example.com/platformcom/api/v1/certmgr/config"


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    """requests.Session stand-in shared across calls of one test."""

    def __init__(self, responses=(), error=None):
        self.responses = list(responses)
        self.error = error
        self.calls = []
        self.verify = True
        self.auth = None

    def __call__(self):
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        del exc
        return False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


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


def artifacts(make_certificate, *chain_names):
    leaf = make_certificate("cucm01.example.com")
    chain = "".join(make_certificate(name) for name in chain_names)
    return CertificateArtifactSet(
        domain="cucm01.example.com",
        environment=Environment.STAGING,
        certificate=leaf,
        chain=chain,
        full_chain=leaf + chain,
    )


def test_fetch_csr_posts_identity_request(target):
    session = FakeSession([FakeResponse(200, {"csr": "CSR-PEM"})])

    csr = VosDevice(session_factory=session).fetch_csr(target)

    assert csr == "CSR-PEM"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", f"{CERTMGR}/csr")
    assert kwargs["json"]["commonName"] == "cucm01.example.com"
    assert kwargs["json"]["altNames"] == ["voice.example.com"]
    assert kwargs["json"]["service"] == "tomcat"
    assert session.verify is False
    assert session.auth == ("admin", "secret")


def test_fetch_csr_rejects_empty_body(target):
    session = FakeSession([FakeResponse(200, {"csr": ""})])

    with pytest.raises(ProtocolError, match="no CSR"):
        VosDevice(session_factory=session).fetch_csr(target)


@pytest.mark.parametrize("status", [401, 403])
def test_auth_failure_is_transport_error(target, status):
    session = FakeSession([FakeResponse(status, text="denied")])

    with pytest.raises(TransportError, match="authentication rejected"):
        VosDevice(session_factory=session).fetch_csr(target)


def test_server_error_is_protocol_error(target):
    session = FakeSession([FakeResponse(500, text="certmgr busy")])

    with pytest.raises(ProtocolError, match="certmgr busy"):
        VosDevice(session_factory=session).fetch_csr(target)


def test_network_error_is_transport_error(target):
    session = FakeSession(error=requests.ConnectTimeout("timed out"))

    with pytest.raises(TransportError, match="CSR generation failed"):
        VosDevice(session_factory=session).fetch_csr(target)


def test_upload_adds_only_missing_ca_certificates(target, make_certificate):
    artifact_set = artifacts(make_certificate, "Intermediate CA", "Root CA")
    intermediate = artifact_set.chain.split("-----END CERTIFICATE-----")[0]
    intermediate += "-----END CERTIFICATE-----\n"
    session = FakeSession(
        [
            FakeResponse(200, [{"certificate": intermediate}]),
            FakeResponse(201, {}),
            FakeResponse(200, {}),
        ]
    )

    ack = VosDevice(session_factory=session).upload_certificate(target, artifact_set)

    assert ack.accepted is True
    assert [(m, url) for m, url, _ in session.calls] == [
        ("GET", f"{CERTMGR}/trust/certificate"),
        ("POST", f"{CERTMGR}/trust/certificates"),
        ("POST", f"{CERTMGR}/identity/certificates"),
    ]
    uploaded = session.calls[1][2]["json"]["certificates"]
    assert len(uploaded) == 1
    assert "1 CA certificate(s)" in ack.detail
    assert session.calls[2][2]["json"]["certificates"] == [artifact_set.certificate]


def test_upload_without_chain_skips_trust_store(target, make_certificate):
    session = FakeSession([FakeResponse(200, {})])

    ack = VosDevice(session_factory=session).upload_certificate(
        target, artifacts(make_certificate)
    )

    assert ack.accepted is True
    assert [m for m, _, _ in session.calls] == ["POST"]
