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
"""PEM parsing helpers for CSRs and certificate chains."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from .errors import ProtocolError

_PEM_CERT_RE = re.compile(
    r"-----BEGIN CERTIFICATE-----\s+.*?-----END CERTIFICATE-----", re.DOTALL
)


def split_pem_chain(pem_chain: str) -> list[str]:
    """Return each certificate block of a PEM bundle, in order."""
    return [block.strip() + "\n" for block in _PEM_CERT_RE.findall(pem_chain or "")]


def split_leaf_and_chain(pem_chain: str) -> tuple[str, str]:
    """Split a full chain into (leaf, intermediates)."""
    blocks = split_pem_chain(pem_chain)
    if not blocks:
        raise ProtocolError("Certificate chain contains no PEM certificates")
    return blocks[0], "".join(blocks[1:])


def load_csr(csr_pem: str) -> x509.CertificateSigningRequest:
    try:
        csr = x509.load_pem_x509_csr(csr_pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise ProtocolError(f"Invalid certificate signing request: {exc}") from exc
    if not csr.is_signature_valid:
        raise ProtocolError("Invalid certificate signing request: bad signature")
    return csr


def csr_domains(csr_pem: str) -> list[str]:
    """Common name followed by subjectAltName DNS entries, deduplicated."""
    csr = load_csr(csr_pem)
    names: list[str] = []
    for attribute in csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME):
        value = str(attribute.value).strip().lower()
        if value:
            names.append(value)
    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        san = None
    if san is not None:
        for value in san.value.get_values_for_type(x509.DNSName):
            value = value.strip().lower()
            if value not in names:
                names.append(value)
    return names


def load_certificate(cert_pem: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise ProtocolError(f"Invalid certificate: {exc}") from exc


def certificate_not_after(cert_pem: str) -> datetime:
    """Expiry of the first certificate in cert_pem, timezone-aware UTC."""
    return load_certificate(cert_pem).not_valid_after_utc


def certificate_fingerprint(cert_pem: str) -> str:
    """Lowercase hex SHA-256 over the DER encoding."""
    der = load_certificate(cert_pem).public_bytes(serialization.Encoding.DER)
    return hashlib.sha256(der).hexdigest()


def _public_key_fingerprint(public_key) -> str:
    spki = public_key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return hashlib.sha256(spki).hexdigest()


def csr_key_fingerprint(csr_pem: str) -> str:
    """SHA-256 of the CSR's SubjectPublicKeyInfo; matches certificate_key_fingerprint."""
    return _public_key_fingerprint(load_csr(csr_pem).public_key())


def certificate_key_fingerprint(cert_pem: str) -> str:
    return _public_key_fingerprint(load_certificate(cert_pem).public_key())
