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
"""Cisco VOS platform REST adapter (CUCM, CUC, IM&P and friends)."""

from __future__ import annotations

import logging
from typing import Any

import requests
import urllib3

from certpilot.app.application.renewal_engine import DeviceAck
from certpilot.app.domain.certificates import split_pem_chain
from certpilot.app.domain.errors import ProtocolError, TransportError
from certpilot.app.domain.models import CertificateArtifactSet, Target

logger = logging.getLogger(__name__)

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

CERTMGR = "/platformcom/api/v1/certmgr/config"
SERVICE = "tomcat"
REQUEST_TIMEOUT = 60


class VosDevice:
    """Device capability for VOS appliances.

    Appliances ship self-signed management certificates, so TLS
    verification is disabled for these calls.
    """

    def __init__(self, session_factory: Any = requests.Session):
        self._session_factory = session_factory

    def _session(self, target: Target) -> requests.Session:
        s = self._session_factory()
        s.verify = False
        s.auth = (target.username, target.password)
        return s

    def _u(self, target: Target, path: str) -> str:
        return f"https://{target.fqdn}{CERTMGR}{path}"

    def _call(
        self, s: requests.Session, method: str, url: str, action: str, **kwargs: Any
    ) -> requests.Response:
        try:
            r = s.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(f"{action} failed: {exc}") from exc
        if r.status_code in (401, 403):
            raise TransportError(f"{action} failed: authentication rejected ({r.status_code})")
        if r.status_code not in (200, 201):
            raise ProtocolError(f"{action} failed ({r.status_code}): {r.text[:500]}")
        return r

    def fetch_csr(self, target: Target) -> str:
        payload: dict[str, Any] = {
            "service": SERVICE,
            "distribution": "this-server",
            "commonName": target.fqdn,
            "keyType": "rsa",
            "keyLength": 2048,
            "hashAlgorithm": "sha256",
        }
        alt_names = target.domains[1:]
        if alt_names:
            payload["altNames"] = alt_names
        logger.info("Requesting CSR from %s", target.fqdn)
        with self._session(target) as s:
            r = self._call(s, "POST", self._u(target, "/csr"), "CSR generation", json=payload)
        try:
            csr = r.json().get("csr")
        except ValueError as exc:
            raise ProtocolError("CSR generation returned a non-JSON response") from exc
        if not csr:
            raise ProtocolError("CSR generation response contained no CSR")
        return csr

    def upload_certificate(
        self, target: Target, artifacts: CertificateArtifactSet
    ) -> DeviceAck:
        with self._session(target) as s:
            uploaded = self._upload_ca_certificates(s, target, artifacts.chain)
            self._call(
                s,
                "POST",
                self._u(target, "/identity/certificates"),
                "Identity certificate upload",
                json={"service": SERVICE, "certificates": [artifacts.certificate]},
            )
        logger.info(
            "Uploaded certificate to %s (%d new CA certificate(s))", target.fqdn, uploaded
        )
        return DeviceAck(
            accepted=True, detail=f"identity installed, {uploaded} CA certificate(s) added"
        )

    def _existing_trust(self, s: requests.Session, target: Target) -> set[str]:
        r = self._call(
            s,
            "GET",
            self._u(target, "/trust/certificate"),
            "Trust store listing",
            params={"service": SERVICE},
        )
        try:
            entries = r.json()
        except ValueError:
            return set()
        if isinstance(entries, dict):
            entries = [entries]
        return {
            _normalize(entry.get("certificate", ""))
            for entry in entries
            if isinstance(entry, dict)
        }

    def _upload_ca_certificates(
        self, s: requests.Session, target: Target, chain_pem: str
    ) -> int:
        chain = split_pem_chain(chain_pem)
        if not chain:
            return 0
        existing = self._existing_trust(s, target)
        missing = [cert for cert in chain if _normalize(cert) not in existing]
        if not missing:
            logger.info("All CA certificates already trusted on %s", target.fqdn)
            return 0
        self._call(
            s,
            "POST",
            self._u(target, "/trust/certificates"),
            "CA certificate upload",
            json={
                "service": [SERVICE],
                "certificates": missing,
                "description": "Trust Certificate",
            },
        )
        return len(missing)


def _normalize(pem: str) -> str:
    return "".join(pem.split())
