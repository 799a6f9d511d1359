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
"""Netmiko-backed interactive shell sessions."""

from __future__ import annotations

import logging
from typing import Any

from netmiko import ConnectHandler  # type: ignore[import-untyped]
from netmiko.exceptions import (  # type: ignore[import-untyped]
    NetmikoAuthenticationException,
    NetmikoTimeoutException,
)

from certpilot.app.domain.errors import TransportError
from certpilot.app.domain.models import Target

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT = 10


class NetmikoRemoteSession:
    """Raw channel access; the appliance CLI prompt is handled by the caller."""

    def __init__(self, connection: Any):
        self._connection = connection

    def send(self, data: str) -> None:
        self._connection.write_channel(data)

    def receive(self) -> str:
        return self._connection.read_channel()

    def close(self) -> None:
        self._connection.disconnect()


class NetmikoSessionFactory:
    """Opens NetmikoRemoteSession instances for targets."""

    def __init__(self, device_type: str = "generic", timeout: int = CONNECTION_TIMEOUT):
        self.device_type = device_type
        self.timeout = timeout

    def open(self, target: Target) -> NetmikoRemoteSession:
        host = target.fqdn
        logger.info("Connecting to %s:%s via SSH", host, target.ssh_port)
        try:
            # VOS prompts ("admin:") are not recognised by netmiko's session
            # preparation, so the shell is opened without it.
            connection = ConnectHandler(
                device_type=self.device_type,
                host=host,
                port=target.ssh_port,
                username=target.username,
                password=target.password,
                timeout=self.timeout,
                auto_connect=False,
            )
            connection.establish_connection()
        except NetmikoAuthenticationException as exc:
            raise TransportError(f"Authentication failed: {exc}") from exc
        except NetmikoTimeoutException as exc:
            raise TransportError(f"Connection timeout: {exc}") from exc
        except Exception as exc:
            raise TransportError(f"Connection error: {exc}") from exc
        logger.info("SSH connection established to %s", host)
        return NetmikoRemoteSession(connection)
