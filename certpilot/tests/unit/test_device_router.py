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
"""Unit tests for per-application-type device dispatch."""

import pytest

from certpilot.app.application.renewal_engine import DeviceAck
from certpilot.app.domain.errors import ConfigurationError
from certpilot.app.domain.models import ApplicationType, Target
from certpilot.app.infrastructure.device_router import DeviceRouter


class NamedDevice:
    def __init__(self, name):
        self.name = name
        self.calls = []

    def fetch_csr(self, target):
        self.calls.append(("fetch_csr", target.target_id))
        return f"CSR from {self.name}"

    def upload_certificate(self, target, artifacts):
        del artifacts
        self.calls.append(("upload_certificate", target.target_id))
        return DeviceAck(accepted=True, detail=self.name)


def make_target(application_type):
    return Target(
        target_id=f"{application_type}-1",
        hostname="node01",
        domain="example.com",
        username="admin",
        password="secret",
        application_type=application_type,
    )


@pytest.fixture
def devices():
    return {
        ApplicationType.VOS.value: NamedDevice("vos"),
        ApplicationType.ISE.value: NamedDevice("ise"),
    }


def test_calls_go_to_the_target_application_type(devices):
    router = DeviceRouter(devices)
    ise = make_target("ise")

    assert router.fetch_csr(ise) == "CSR from ise"
    assert router.upload_certificate(ise, None).detail == "ise"
    assert router.fetch_csr(make_target("vos")) == "CSR from vos"
    assert devices["ise"].calls == [("fetch_csr", "ise-1"), ("upload_certificate", "ise-1")]
    assert devices["vos"].calls == [("fetch_csr", "vos-1")]


def test_unknown_application_type_is_configuration_error(devices):
    router = DeviceRouter(devices)

    with pytest.raises(ConfigurationError, match="Unsupported application type 'general'"):
        router.fetch_csr(make_target("general"))
    assert all(device.calls == [] for device in devices.values())
