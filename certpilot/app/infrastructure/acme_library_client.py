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
"""ACME v2 client adapter built on the certbot ``acme`` library."""

from __future__ import annotations

import datetime
import json
import logging
import os
from pathlib import Path

import josepy as jose
import requests
from acme import challenges, client, errors, messages
from cryptography.hazmat.primitives.asymmetric import rsa

from certpilot.app.application.renewal_engine import (
    AcmeAccount,
    AcmeChallenge,
    AcmeOrder,
)
from certpilot.app.domain.certificates import csr_domains
from certpilot.app.domain.errors import (
    ConfigurationError,
    ProtocolError,
    TransportError,
    VerificationTimeoutError,
)
from certpilot.app.domain.models import Environment
from certpilot.app.infrastructure.file_artifact_store import FileArtifactStore

logger = logging.getLogger(__name__)

LETSENCRYPT_DIRECTORIES = {
    Environment.PRODUCTION: "https://acme-v02.api.letsencrypt.org/directory",
    Environment.STAGING: "https://acme-staging-v02.api.letsencrypt.org/directory",
}
# ZeroSSL has no staging endpoint and requires External Account Binding.
ZEROSSL_DIRECTORY = "https://acme.zerossl.com/v2/DV90"
ACCOUNT_FILE = "account.json"
ACCOUNT_KEY_BITS = 2048
USER_AGENT = "certpilot"


def _translate(action: str, exc: Exception) -> Exception:
    if isinstance(exc, errors.TimeoutError):
        return VerificationTimeoutError(f"{action} timed out: {exc}")
    if isinstance(exc, requests.RequestException):
        return TransportError(f"{action} failed: {exc}")
    return ProtocolError(f"{action} failed: {exc}")


class AcmeLibraryClient:
    """AcmeClient backed by ``acme.client.ClientV2``.

    Accounts (key + registration) are stored per domain as
    ``<accounts>/<domain>/<env>/account.json``.
    """

    def __init__(
        self,
        store: FileArtifactStore,
        environment: Environment = Environment.STAGING,
        directory_url: str | None = None,
        order_timeout: float = 300.0,
        eab_kid: str | None = None,
        eab_hmac_key: str | None = None,
    ):
        if bool(eab_kid) != bool(eab_hmac_key):
            raise ConfigurationError("EAB requires both a key ID and an HMAC key")
        self.store = store
        self.environment = environment
        self.directory_url = directory_url or LETSENCRYPT_DIRECTORIES[environment]
        self.order_timeout = order_timeout
        self.eab_kid = eab_kid
        self.eab_hmac_key = eab_hmac_key

    def _account_path(self, domain: str) -> Path:
        return self.store.environment_dir(domain, self.environment) / ACCOUNT_FILE

    def _connect(
        self, key: jose.JWKRSA, registration: messages.RegistrationResource | None = None
    ) -> client.ClientV2:
        network = client.ClientNetwork(key, account=registration, user_agent=USER_AGENT)
        directory = client.ClientV2.get_directory(self.directory_url, network)
        return client.ClientV2(directory, network)

    def _deadline(self) -> datetime.datetime:
        return datetime.datetime.now() + datetime.timedelta(seconds=self.order_timeout)

    def load_account(self, domain: str) -> AcmeAccount | None:
        path = self._account_path(domain)
        if not path.is_file():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        key = jose.JWKRSA.json_loads(data["key"])
        registration = messages.RegistrationResource.json_loads(data["registration"])
        try:
            acme_client = self._connect(key, registration)
        except Exception as exc:
            raise _translate("Connecting to ACME directory", exc) from exc
        logger.info("Loaded ACME account %s for %s", registration.uri, domain)
        return AcmeAccount(
            domain=domain,
            environment=self.environment,
            contact=data.get("contact", ""),
            uri=registration.uri or "",
            handle=(acme_client, key),
        )

    def create_account(self, email: str, domain: str) -> AcmeAccount:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=ACCOUNT_KEY_BITS)
        key = jose.JWKRSA(key=private_key)
        try:
            acme_client = self._connect(key)
            registration = acme_client.new_account(
                self._new_registration(acme_client, key, email)
            )
        except errors.ConflictError as exc:
            raise ProtocolError(f"ACME account already exists at {exc.location}") from exc
        except ConfigurationError:
            raise
        except Exception as exc:
            raise _translate("ACME account registration", exc) from exc

        path = self._account_path(domain)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "contact": email,
            "key": key.json_dumps(),
            "registration": registration.json_dumps(),
        }
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(json.dumps(payload), encoding="utf-8")
        os.chmod(tmp, 0o600)
        os.replace(tmp, path)
        logger.info("Registered ACME account %s for %s", registration.uri, domain)
        return AcmeAccount(
            domain=domain,
            environment=self.environment,
            contact=email,
            uri=registration.uri or "",
            handle=(acme_client, key),
        )

    def _new_registration(
        self, acme_client: client.ClientV2, key: jose.JWKRSA, email: str
    ) -> messages.NewRegistration:
        eab = None
        if self.eab_kid and self.eab_hmac_key:
            eab = messages.ExternalAccountBinding.from_data(
                account_public_key=key.public_key(),
                kid=self.eab_kid,
                hmac_key=self.eab_hmac_key,
                directory=acme_client.directory,
            )
        elif acme_client.directory.meta.external_account_required:
            raise ConfigurationError(
                f"ACME directory {self.directory_url} requires External Account Binding"
            )
        return messages.NewRegistration.from_data(
            email=email, terms_of_service_agreed=True, external_account_binding=eab
        )

    def request_certificate(
        self, account: AcmeAccount, csr_pem: str, domains: list[str]
    ) -> AcmeOrder:
        covered = set(csr_domains(csr_pem))
        missing = [d for d in domains if d.lower() not in covered]
        if missing:
            raise ProtocolError(
                f"CSR does not cover requested domain(s): {', '.join(missing)}"
            )
        acme_client, _key = account.handle
        try:
            orderr = acme_client.new_order(csr_pem.encode("ascii"))
        except Exception as exc:
            raise _translate("ACME order creation", exc) from exc

        order_challenges = []
        for authzr in orderr.authorizations:
            identifier = authzr.body.identifier.value
            domain = f"*.{identifier}" if authzr.body.wildcard else identifier
            challb = next(
                (c for c in authzr.body.challenges if isinstance(c.chall, challenges.DNS01)),
                None,
            )
            if challb is None:
                raise ProtocolError(f"CA offered no dns-01 challenge for {domain}")
            order_challenges.append(
                AcmeChallenge(
                    domain=domain,
                    token=challb.chall.encode("token"),
                    url=challb.uri,
                    handle=challb,
                )
            )
        logger.info("ACME order %s created with %d challenge(s)", orderr.uri, len(order_challenges))
        return AcmeOrder(
            account=account,
            domains=list(domains),
            challenges=order_challenges,
            status=str(orderr.body.status),
            url=orderr.uri or "",
            handle=orderr,
        )

    def get_challenge_key_authorization(
        self, order: AcmeOrder, challenge: AcmeChallenge
    ) -> str:
        _client, key = order.account.handle
        return challenge.handle.chall.validation(key)

    def complete_challenge(self, order: AcmeOrder, challenge: AcmeChallenge) -> None:
        acme_client, key = order.account.handle
        challb = challenge.handle
        try:
            acme_client.answer_challenge(challb, challb.chall.response(key))
        except Exception as exc:
            raise _translate(f"Answering challenge for {challenge.domain}", exc) from exc

    def wait_for_order_completion(self, order: AcmeOrder) -> AcmeOrder:
        acme_client, _key = order.account.handle
        try:
            orderr = acme_client.poll_authorizations(order.handle, self._deadline())
        except errors.ValidationError as exc:
            details = "; ".join(
                f"{a.body.identifier.value}: {c.error}"
                for a in exc.failed_authzrs
                for c in a.body.challenges
                if c.error is not None
            )
            raise ProtocolError(f"ACME validation failed: {details or exc}") from exc
        except Exception as exc:
            raise _translate("Waiting for ACME order", exc) from exc
        order.handle = orderr
        order.status = str(orderr.body.status)
        return order

    def finalize_certificate(self, order: AcmeOrder, csr_pem: str) -> str:
        del csr_pem
        acme_client, _key = order.account.handle
        try:
            orderr = acme_client.finalize_order(order.handle, self._deadline())
        except Exception as exc:
            raise _translate("Finalizing ACME order", exc) from exc
        order.handle = orderr
        order.status = str(orderr.body.status)
        if not orderr.fullchain_pem:
            raise ProtocolError("ACME order finalized without a certificate")
        return orderr.fullchain_pem
