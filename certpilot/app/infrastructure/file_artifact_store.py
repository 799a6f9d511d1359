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
"""Filesystem layout for CSRs, issued certificates and renewal logs.

    <root>/<domain>/renewal.log
    <root>/<domain>/<staging|prod>/certificate.csr
    <root>/<domain>/<staging|prod>/certificate.pem
    <root>/<domain>/<staging|prod>/chain.pem
    <root>/<domain>/<staging|prod>/fullchain.pem
    <root>/<domain>/keys/<public key sha256>.key
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from threading import Lock

from certpilot.app.application.events import utc_now
from certpilot.app.domain.models import CertificateArtifactSet, Environment

logger = logging.getLogger(__name__)

CSR_FILE = "certificate.csr"
CERTIFICATE_FILE = "certificate.pem"
CHAIN_FILE = "chain.pem"
FULLCHAIN_FILE = "fullchain.pem"
RENEWAL_LOG_FILE = "renewal.log"
KEYS_DIR = "keys"


def _safe_component(name: str) -> str:
    cleaned = name.strip().lower()
    if not cleaned or cleaned in {".", ".."} or "/" in cleaned or "\\" in cleaned:
        raise ValueError(f"Invalid domain for artifact path: {name!r}")
    return cleaned


class FileArtifactStore:
    """Writes artifacts atomically (temp file + rename) under a root directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._log_lock = Lock()

    def domain_dir(self, domain: str) -> Path:
        return self.root / _safe_component(domain)

    def environment_dir(self, domain: str, environment: Environment) -> Path:
        return self.domain_dir(domain) / environment.value

    def load_csr(self, domain: str, environment: Environment) -> str | None:
        path = self.environment_dir(domain, environment) / CSR_FILE
        if not path.is_file():
            return None
        content = path.read_text(encoding="utf-8")
        return content if content.strip() else None

    def save_csr(self, domain: str, environment: Environment, csr_pem: str) -> None:
        self._write(self.environment_dir(domain, environment) / CSR_FILE, csr_pem)

    def save_certificate(self, artifacts: CertificateArtifactSet) -> None:
        directory = self.environment_dir(artifacts.domain, artifacts.environment)
        self._write(directory / CERTIFICATE_FILE, artifacts.certificate)
        self._write(directory / CHAIN_FILE, artifacts.chain)
        self._write(directory / FULLCHAIN_FILE, artifacts.full_chain)
        logger.info("Saved certificate set for %s in %s", artifacts.domain, directory)

    def load_certificate(
        self, domain: str, environment: Environment
    ) -> CertificateArtifactSet | None:
        directory = self.environment_dir(domain, environment)
        paths = [directory / name for name in (CERTIFICATE_FILE, CHAIN_FILE, FULLCHAIN_FILE)]
        if not all(path.is_file() for path in paths):
            return None
        certificate, chain, full_chain = (p.read_text(encoding="utf-8") for p in paths)
        return CertificateArtifactSet(
            domain=domain,
            environment=environment,
            certificate=certificate,
            chain=chain,
            full_chain=full_chain,
        )

    def save_private_key(self, domain: str, fingerprint: str, key_pem: str) -> None:
        path = self._key_path(domain, fingerprint)
        self._write(path, key_pem, mode=0o600)
        logger.info("Stored private key %s for %s", fingerprint[:12], domain)

    def load_private_key(self, domain: str, fingerprint: str) -> str | None:
        path = self._key_path(domain, fingerprint)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _key_path(self, domain: str, fingerprint: str) -> Path:
        if not fingerprint or not all(c in "0123456789abcdef" for c in fingerprint):
            raise ValueError(f"Invalid key fingerprint: {fingerprint!r}")
        return self.domain_dir(domain) / KEYS_DIR / f"{fingerprint}.key"

    def append_log(self, domain: str, line: str) -> None:
        path = self.domain_dir(domain) / RENEWAL_LOG_FILE
        with self._log_lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(f"[{utc_now()}] {line}\n")

    def read_log(self, domain: str) -> list[str]:
        path = self.domain_dir(domain) / RENEWAL_LOG_FILE
        if not path.is_file():
            return []
        return path.read_text(encoding="utf-8").splitlines()

    @staticmethod
    def _write(path: Path, content: str, mode: int | None = None) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(content, encoding="utf-8")
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
