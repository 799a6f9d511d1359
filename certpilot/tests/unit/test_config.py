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
"""Unit tests for environment-driven settings."""

import pytest

from certpilot.app.config import Settings, load_settings
from certpilot.app.domain.errors import ConfigurationError
from certpilot.app.domain.models import Environment


def test_defaults_use_staging_and_simulated_adapters():
    settings = load_settings({})

    assert settings == Settings()
    assert settings.environment == Environment.STAGING
    assert settings.acme_mode == "simulated"
    assert settings.dns_nameservers == ("1.1.1.1", "1.0.0.1")


def test_production_requires_explicit_false():
    assert load_settings({"CERTPILOT_ACME_STAGING": "false"}).environment == Environment.PRODUCTION
    assert load_settings({"CERTPILOT_ACME_STAGING": "no"}).environment == Environment.STAGING
    assert load_settings({"CERTPILOT_ACME_STAGING": " FALSE "}).acme_staging is False


def test_values_are_parsed_from_environment():
    settings = load_settings(
        {
            "CERTPILOT_ACME_EMAIL": "ops@example.com",
            "CERTPILOT_DNS_NAMESERVERS": "8.8.8.8, 8.8.4.4,,",
            "CERTPILOT_DNS_TIMEOUT": "120",
            "CERTPILOT_DNS_CLEANUP_IN_STAGING": "yes",
            "CERTPILOT_OPERATION_RETENTION_MINUTES": "15",
            "CERTPILOT_DNS_MODE": "Cloudflare",
            "CERTPILOT_LOG_LEVEL": "debug",
        }
    )

    assert settings.acme_email == "ops@example.com"
    assert settings.dns_nameservers == ("8.8.8.8", "8.8.4.4")
    assert settings.dns_timeout == 120.0
    assert settings.dns_cleanup_in_staging is True
    assert settings.operation_retention_minutes == 15
    assert settings.dns_mode == "cloudflare"
    assert settings.log_level == "DEBUG"


def test_blank_values_fall_back_to_defaults():
    settings = load_settings({"CERTPILOT_ACME_EMAIL": "  ", "CERTPILOT_ACCOUNTS_DIR": ""})

    assert settings.acme_email is None
    assert settings.accounts_dir == "./accounts"


@pytest.mark.parametrize(
    "name,value",
    [
        ("CERTPILOT_DNS_TIMEOUT", "soon"),
        ("CERTPILOT_DNS_TIMEOUT", "-1"),
        ("CERTPILOT_DNS_POLL_INTERVAL", "0"),
        ("CERTPILOT_RESTART_TIMEOUT", "0"),
        ("CERTPILOT_ACME_MODE", "boulder"),
        ("CERTPILOT_SESSION_MODE", "telnet"),
    ],
)
def test_invalid_values_raise_configuration_error(name, value):
    with pytest.raises(ConfigurationError, match=name):
        load_settings({name: value})


def test_zerossl_requires_external_account_binding():
    with pytest.raises(ConfigurationError, match="External Account Binding"):
        load_settings({"CERTPILOT_ACME_MODE": "zerossl"})
    with pytest.raises(ConfigurationError, match="must be set together"):
        load_settings({"CERTPILOT_ACME_EAB_KID": "kid-1"})

    settings = load_settings(
        {
            "CERTPILOT_ACME_MODE": "ZeroSSL",
            "CERTPILOT_ACME_EAB_KID": "kid-1",
            "CERTPILOT_ACME_EAB_HMAC_KEY": "c2VjcmV0",
        }
    )
    assert settings.acme_mode == "zerossl"
    assert settings.acme_eab_kid == "kid-1"


def test_auto_renewal_settings():
    settings = load_settings(
        {
            "CERTPILOT_AUTO_RENEW": "off",
            "CERTPILOT_AUTO_RENEW_WITHIN_DAYS": "14",
            "CERTPILOT_AUTO_RENEW_INTERVAL": "3600",
        }
    )

    assert settings.auto_renew_enabled is False
    assert settings.auto_renew_within_days == 14
    assert settings.auto_renew_interval == 3600.0
    assert load_settings({}).auto_renew_enabled is True
    with pytest.raises(ConfigurationError, match="CERTPILOT_AUTO_RENEW_INTERVAL"):
        load_settings({"CERTPILOT_AUTO_RENEW_INTERVAL": "5"})
