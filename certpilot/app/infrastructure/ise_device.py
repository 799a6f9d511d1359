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
"""Cisco ISE Open API adapter."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests
import urllib3

from certpilot.app.application.renewal_engine import DeviceAck
from certpilot.app.domain.certificates import (
    certificate_fingerprint,
    certificate_key_fingerprint,
    csr_key_fingerprint,
    split_pem_chain,
)
from certpilot.app.domain.errors import ProtocolError, TransportError
from certpilot.app.domain.models import CertificateArtifactSet, Target

logger = logging.getLogger(__name__)

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

CERTS = "/api/v1/certs"
CSR_PATH = f"{CERTS}/certificate-signing-request"
IDENTITY_IMPORT_PATH = f"{CERTS}/system-certificate/import"
TRUST_PATH = f"{CERTS}/trusted-certificate"
TRUST_IMPORT_PATH = f"{CERTS}/trusted-certificate/import"
REQUEST_TIMEOUT = 60
IDENTITY_NAME = "certpilot identity"
PORTAL_GROUP_TAG = "Default Portal Certificate Group"


class KeyStore(Protocol):
    def save_private_key(self, domain: str, fingerprint: str, key_pem: str) -> None:
        """Persist the key that belongs to a CSR."""

    def load_private_key(self, domain: str, fingerprint: str) -> str | None:
        """Key whose public half has the given fingerprint."""


class IseDevice:
    """Device capability for ISE nodes.

    ISE hands back the private key with the CSR and wants it again when
    the signed certificate is imported, so keys are kept in the key store
    under their public key fingerprint.
    """

    def __init__(self, keys: KeyStore, session_factory: Any = requests.Session):
        self.keys = keys
        self._session_factory = session_factory

    def _session(self, target: Target) -> requests.Session:
        s = self._session_factory()
        s.verify = False
        s.auth = (target.username, target.password)
        s.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
        return s

    def _u(self, target: Target, path: str) -> str:
        return f"https://{target.fqdn}{path}"

    def _call(
        self, s: requests.Session, method: str, url: str, action: str, **kwargs: Any
    ) -> Any:
        try:
            r = s.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(f"{action} failed: {exc}") from exc
        if r.status_code in (401, 403):
            raise TransportError(f"{action} failed: authentication rejected ({r.status_code})")
        if r.status_code not in (200, 201, 202):
            raise ProtocolError(f"{action} failed ({r.status_code}): {r.text[:500]}")
        try:
            return r.json()
        except ValueError:
            return {}

    def fetch_csr(self, target: Target) -> str:
        payload = {
            "subjectCommonName": target.fqdn,
            "keyType": "RSA",
            "keyLength": "2048",
            "digestType": "SHA-256",
            "usedFor": "MULTI-USE",
            "sanDNS": target.domains,
            "hostnames": [target.hostname],
        }
        logger.info("Requesting CSR from ISE node %s", target.fqdn)
        with self._session(target) as s:
            body = self._call(s, "POST", self._u(target, CSR_PATH), "CSR generation", json=payload)
        response = body.get("response") if isinstance(body, dict) else None
        if not isinstance(response, dict):
            raise ProtocolError("ISE CSR generation returned no response object")
        csr = response.get("certificateSigningRequest")
        key = response.get("privateKey")
        if not csr:
            raise ProtocolError("ISE CSR generation response contained no CSR")
        if not key:
            raise ProtocolError("ISE CSR generation response contained no private key")
        self.keys.save_private_key(target.fqdn, csr_key_fingerprint(csr), key)
        return csr

    def upload_certificate(
        self, target: Target, artifacts: CertificateArtifactSet
    ) -> DeviceAck:
        key = self.keys.load_private_key(
            target.fqdn, certificate_key_fingerprint(artifacts.certificate)
        )
        if key is None:
            raise ProtocolError(
                f"No private key on record for the certificate issued to {target.fqdn}"
            )
        with self._session(target) as s:
            uploaded, skipped = self._upload_trust_certificates(s, target, artifacts.chain)
            body = self._call(
                s,
                "POST",
                self._u(target, IDENTITY_IMPORT_PATH),
                "Identity certificate import",
                json={
                    "data": artifacts.certificate,
                    "privateKeyData": key,
                    "password": "",
                    "name": IDENTITY_NAME,
                    "admin": False,
                    "eap": False,
                    "ims": False,
                    "portal": True,
                    "portalGroupTag": PORTAL_GROUP_TAG,
                    "pxgrid": False,
                    "radius": False,
                    "saml": False,
                    "allowExtendedValidity": True,
                    "allowOutOfDateCert": True,
                    "allowReplacementOfCertificates": True,
                    "allowReplacementOfPortalGroupTag": True,
                    "allowPortalTagTransferForSameSubject": True,
                    "allowRoleTransferForSameSubject": True,
                    "allowSHA1Certificates": False,
                    "allowWildCardCertificates": False,
                    "validateCertificateExtensions": False,
                },
            )
        certificate_id = ((body or {}).get("response") or {}).get("id", "unknown")
        logger.info(
            "Imported certificate %s on %s (%d trust certificate(s) added, %d present)",
            certificate_id,
            target.fqdn,
            uploaded,
            skipped,
        )
        return DeviceAck(
            accepted=True,
            detail=f"identity {certificate_id} imported, {uploaded} trust certificate(s) added",
        )

    def _existing_trust(self, s: requests.Session, target: Target) -> set[str]:
        body = self._call(s, "GET", self._u(target, TRUST_PATH), "Trust store listing")
        entries = body.get("response") if isinstance(body, dict) else None
        if not isinstance(entries, list):
            return set()
        return {
            str(entry["sha256Fingerprint"]).replace(":", "").lower()
            for entry in entries
            if isinstance(entry, dict) and entry.get("sha256Fingerprint")
        }

    def _upload_trust_certificates(
        self, s: requests.Session, target: Target, chain_pem: str
    ) -> tuple[int, int]:
        chain = split_pem_chain(chain_pem)
        if not chain:
            return 0, 0
        existing = self._existing_trust(s, target)
        uploaded = skipped = 0
        for cert in chain:
            fingerprint = certificate_fingerprint(cert)
            if fingerprint in existing:
                skipped += 1
                continue
            self._call(
                s,
                "POST",
                self._u(target, TRUST_IMPORT_PATH),
                "Trust certificate import",
                json={
                    "data": cert,
                    "name": f"certpilot trust {fingerprint[:16]}",
                    "description": "Imported Trust Certificate",
                    "allowBasicConstraintCAFalse": True,
                    "allowOutOfDateCert": True,
                    "allowSHA1Certificates": False,
                    "trustForCertificateBasedAdminAuth": False,
                    "trustForCiscoServicesAuth": False,
                    "trustForClientAuth": False,
                    "trustForIseAuth": True,
                    "validateCertificateExtensions": False,
                },
            )
            uploaded += 1
        return uploaded, skipped
