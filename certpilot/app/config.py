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
"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from certpilot.app.domain.errors import ConfigurationError
from certpilot.app.domain.models import Environment

PREFIX = "CERTPILOT_"


@dataclass(frozen=True)
class Settings:
    accounts_dir: str = "./accounts"
    acme_staging: bool = True
    acme_directory_url: Optional[str] = None
    acme_email: Optional[str] = None
    acme_eab_kid: Optional[str] = None
    acme_eab_hmac_key: Optional[str] = None
    dns_cleanup_in_staging: bool = False
    dns_poll_interval: float = 10.0
    dns_timeout: float = 300.0
    dns_nameservers: tuple[str, ...] = ("1.1.1.1", "1.0.0.1")
    order_settle_delay: float = 3.0
    order_timeout: float = 300.0
    restart_command: str = "utils service restart Cisco Tomcat"
    restart_timeout: float = 600.0
    operation_retention_minutes: int = 60
    auto_renew_enabled: bool = True
    auto_renew_within_days: int = 7
    auto_renew_interval: float = 86400.0
    cloudflare_api_token: Optional[str] = None
    cloudflare_zone_id: Optional[str] = None
    acme_mode: str = "simulated"
    dns_mode: str = "simulated"
    device_mode: str = "simulated"
    session_mode: str = "simulated"
    ssh_device_type: str = "generic"
    log_level: str = "INFO"

    @property
    def environment(self) -> Environment:
        return Environment.STAGING if self.acme_staging else Environment.PRODUCTION


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(PREFIX + name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _number(env: Mapping[str, str], name: str, default: float, minimum: float = 0) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{PREFIX}{name} must be a number, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{PREFIX}{name} must be >= {minimum:g}, got {raw!r}")
    return value


def _mode(env: Mapping[str, str], name: str, allowed: tuple[str, ...]) -> str:
    value = (_get(env, name) or allowed[0]).lower()
    if value not in allowed:
        raise ConfigurationError(
            f"{PREFIX}{name} must be one of {', '.join(allowed)}, got {value!r}"
        )
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from CERTPILOT_* variables (os.environ by default)."""
    env = os.environ if env is None else env
    defaults = Settings()
    nameservers = _get(env, "DNS_NAMESERVERS")
    acme_mode = _mode(env, "ACME_MODE", ("simulated", "letsencrypt", "zerossl"))
    eab_kid = _get(env, "ACME_EAB_KID")
    eab_hmac_key = _get(env, "ACME_EAB_HMAC_KEY")
    if bool(eab_kid) != bool(eab_hmac_key):
        raise ConfigurationError(
            f"{PREFIX}ACME_EAB_KID and {PREFIX}ACME_EAB_HMAC_KEY must be set together"
        )
    if acme_mode == "zerossl" and not eab_kid:
        raise ConfigurationError(
            f"{PREFIX}ACME_MODE=zerossl requires External Account Binding credentials"
        )
    return Settings(
        accounts_dir=_get(env, "ACCOUNTS_DIR") or defaults.accounts_dir,
        # Staging unless explicitly disabled.
        acme_staging=(_get(env, "ACME_STAGING") or "true").lower() != "false",
        acme_directory_url=_get(env, "ACME_DIRECTORY_URL"),
        acme_email=_get(env, "ACME_EMAIL"),
        acme_eab_kid=eab_kid,
        acme_eab_hmac_key=eab_hmac_key,
        dns_cleanup_in_staging=_flag(
            env, "DNS_CLEANUP_IN_STAGING", defaults.dns_cleanup_in_staging
        ),
        dns_poll_interval=_number(env, "DNS_POLL_INTERVAL", defaults.dns_poll_interval, 0.1),
        dns_timeout=_number(env, "DNS_TIMEOUT", defaults.dns_timeout),
        dns_nameservers=tuple(ns.strip() for ns in nameservers.split(",") if ns.strip())
        if nameservers
        else defaults.dns_nameservers,
        order_settle_delay=_number(env, "ORDER_SETTLE_DELAY", defaults.order_settle_delay),
        order_timeout=_number(env, "ORDER_TIMEOUT", defaults.order_timeout, 1),
        restart_command=_get(env, "RESTART_COMMAND") or defaults.restart_command,
        restart_timeout=_number(env, "RESTART_TIMEOUT", defaults.restart_timeout, 1),
        operation_retention_minutes=int(
            _number(
                env, "OPERATION_RETENTION_MINUTES", defaults.operation_retention_minutes
            )
        ),
        auto_renew_enabled=_flag(env, "AUTO_RENEW", defaults.auto_renew_enabled),
        auto_renew_within_days=int(
            _number(env, "AUTO_RENEW_WITHIN_DAYS", defaults.auto_renew_within_days)
        ),
        auto_renew_interval=_number(
            env, "AUTO_RENEW_INTERVAL", defaults.auto_renew_interval, 60
        ),
        cloudflare_api_token=_get(env, "CLOUDFLARE_API_TOKEN"),
        cloudflare_zone_id=_get(env, "CLOUDFLARE_ZONE_ID"),
        acme_mode=acme_mode,
        dns_mode=_mode(env, "DNS_MODE", ("simulated", "cloudflare")),
        device_mode=_mode(env, "DEVICE_MODE", ("simulated", "live")),
        session_mode=_mode(env, "SESSION_MODE", ("simulated", "netmiko")),
        ssh_device_type=_get(env, "SSH_DEVICE_TYPE") or defaults.ssh_device_type,
        log_level=(_get(env, "LOG_LEVEL") or defaults.log_level).upper(),
    )
