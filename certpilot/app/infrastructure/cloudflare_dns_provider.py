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
"""Cloudflare DNS provider with resolver-side propagation checks."""

from __future__ import annotations

import logging
from typing import Any

import dns.exception
import dns.resolver
import requests

from certpilot.app.application.dns_challenge import TxtRecordHandle, challenge_record_name
from certpilot.app.domain.errors import ConfigurationError, ProtocolError, TransportError

logger = logging.getLogger(__name__)

CLOUDFLARE_API = "https://api.cloudflare.com/client/v4"
TXT_TTL = 120
REQUEST_TIMEOUT = 30
DEFAULT_NAMESERVERS = ("1.1.1.1", "1.0.0.1")


class CloudflareDnsProvider:
    """Creates challenge records through the Cloudflare v4 API.

    Visibility is checked by querying public resolvers directly, not by
    trusting the API's own acknowledgement.
    """

    def __init__(
        self,
        api_token: str | None,
        zone_id: str | None,
        nameservers: tuple[str, ...] | list[str] = DEFAULT_NAMESERVERS,
        session: requests.Session | None = None,
        resolver: dns.resolver.Resolver | None = None,
    ):
        if not api_token or not zone_id:
            raise ConfigurationError("Cloudflare API token or zone ID not configured")
        self.zone_id = zone_id
        self.s = session or requests.Session()
        self.s.headers.update(
            {"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"}
        )
        if resolver is None:
            resolver = dns.resolver.Resolver(configure=False)
            resolver.nameservers = list(nameservers)
            resolver.lifetime = 10.0
        self.resolver = resolver

    # ---------- HTTP helpers ----------
    def _u(self, path: str) -> str:
        return f"{CLOUDFLARE_API}/zones/{self.zone_id}{path}"

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            r = self.s.request(method, self._u(path), timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(f"Cloudflare API unreachable: {exc}") from exc
        try:
            body = r.json()
        except ValueError:
            body = {}
        if r.status_code >= 400 or not body.get("success", False):
            raise ProtocolError(
                f"Cloudflare API error ({r.status_code}): {body.get('errors') or r.text}"
            )
        return body.get("result")

    # ---------- record management ----------
    def find_txt_records(self, domain: str) -> list[dict[str, Any]]:
        name = challenge_record_name(domain)
        return self._request("GET", "/dns_records", params={"type": "TXT", "name": name}) or []

    def purge_txt_records(self, domain: str) -> int:
        """Delete leftover challenge records for domain."""
        records = self.find_txt_records(domain)
        for record in records:
            self._request("DELETE", f"/dns_records/{record['id']}")
        if records:
            logger.info("Removed %d stale TXT record(s) for %s", len(records), domain)
        return len(records)

    def create_txt_record(self, domain: str, value: str) -> TxtRecordHandle:
        name = challenge_record_name(domain)
        record = self._request(
            "POST",
            "/dns_records",
            json={"type": "TXT", "name": name, "content": value, "ttl": TXT_TTL},
        )
        logger.info("Created Cloudflare TXT record %s (id=%s)", name, record["id"])
        return TxtRecordHandle(domain=domain, name=name, value=value, record_id=record["id"])

    def delete_txt_record(self, handle: TxtRecordHandle) -> None:
        self._request("DELETE", f"/dns_records/{handle.record_id}")

    def verify_txt_record(self, domain: str, expected_value: str) -> bool:
        name = challenge_record_name(domain)
        try:
            answer = self.resolver.resolve(name, "TXT")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return False
        except dns.exception.DNSException as exc:
            logger.debug("TXT query for %s failed: %s", name, exc)
            return False
        values = {
            b"".join(rdata.strings).decode("utf-8", errors="replace") for rdata in answer
        }
        return expected_value in values
