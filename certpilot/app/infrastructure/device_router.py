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
"""Dispatches device calls to the adapter for a target's application type."""

from __future__ import annotations

from typing import Mapping

from certpilot.app.application.renewal_engine import Device, DeviceAck
from certpilot.app.domain.errors import ConfigurationError
from certpilot.app.domain.models import CertificateArtifactSet, Target


class DeviceRouter:
    def __init__(self, devices: Mapping[str, Device]):
        self.devices = dict(devices)

    def for_target(self, target: Target) -> Device:
        device = self.devices.get(target.application_type)
        if device is None:
            raise ConfigurationError(
                f"Unsupported application type {target.application_type!r} "
                f"for target {target.target_id}"
            )
        return device

    def fetch_csr(self, target: Target) -> str:
        return self.for_target(target).fetch_csr(target)

    def upload_certificate(
        self, target: Target, artifacts: CertificateArtifactSet
    ) -> DeviceAck:
        return self.for_target(target).upload_certificate(target, artifacts)
