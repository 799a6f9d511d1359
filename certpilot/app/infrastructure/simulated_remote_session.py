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
"""Simulated appliance shell for API-level scaffolding."""

from __future__ import annotations

import os
import time
from collections import deque

from certpilot.app.domain.models import Target

PROMPT = "admin:"
RESTART_TRANSCRIPT = (
    "Service Manager is running\r\n",
    "Cisco Tomcat[STOPPING]\r\n",
    "Cisco Tomcat[STOPPING]\r\nCisco Tomcat[STARTING]\r\n",
    "Cisco Tomcat[STARTED]\r\n",
    PROMPT,
)


class SimulatedRemoteSession:
    """Replays a VOS-like transcript one chunk per receive()."""

    def __init__(self, hostname: str, delay_ms: int = 0):
        self.hostname = hostname
        self.delay_ms = delay_ms
        self.sent: list[str] = []
        self.closed = False
        self._pending: deque[str] = deque(
            [f"Welcome to the Platform Command Line Interface\r\n\r\n{PROMPT}"]
        )

    def send(self, data: str) -> None:
        self.sent.append(data)
        command = data.strip()
        if not command:
            self._pending.append(PROMPT)
            return
        self._pending.append(f"{command}\r\n")
        if "service restart" in command:
            self._pending.extend(RESTART_TRANSCRIPT)
        else:
            self._pending.append(f"simulated output for {command}\r\n{PROMPT}")

    def receive(self) -> str:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)
        if not self._pending:
            return ""
        return self._pending.popleft()

    def close(self) -> None:
        self.closed = True


class SimulatedSessionFactory:
    def open(self, target: Target) -> SimulatedRemoteSession:
        delay_ms = int(os.getenv("CERTPILOT_SIMULATED_DELAY_MS", "0").strip() or "0")
        return SimulatedRemoteSession(target.fqdn, delay_ms=delay_ms)
