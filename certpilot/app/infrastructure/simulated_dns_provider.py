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
"""In-memory DNS provider for API-level scaffolding."""

from __future__ import annotations

from threading import Lock
from uuid import uuid4

from certpilot.app.application.dns_challenge import TxtRecordHandle, challenge_record_name


class SimulatedDnsProvider:
    """Records become visible after ``visible_after`` lookups."""

    def __init__(self, visible_after: int = 0):
        self.visible_after = visible_after
        self._lock = Lock()
        self._records: dict[str, TxtRecordHandle] = {}
        self._lookups: dict[str, int] = {}

    def purge_txt_records(self, domain: str) -> int:
        name = challenge_record_name(domain)
        with self._lock:
            stale = [rid for rid, r in self._records.items() if r.name == name]
            for record_id in stale:
                del self._records[record_id]
        return len(stale)

    def create_txt_record(self, domain: str, value: str) -> TxtRecordHandle:
        handle = TxtRecordHandle(
            domain=domain,
            name=challenge_record_name(domain),
            value=value,
            record_id=uuid4().hex,
        )
        with self._lock:
            self._records[handle.record_id] = handle
        return handle

    def verify_txt_record(self, domain: str, expected_value: str) -> bool:
        name = challenge_record_name(domain)
        with self._lock:
            seen = self._lookups.get(name, 0)
            self._lookups[name] = seen + 1
            if seen < self.visible_after:
                return False
            return any(
                r.name == name and r.value == expected_value for r in self._records.values()
            )

    def delete_txt_record(self, handle: TxtRecordHandle) -> None:
        with self._lock:
            self._records.pop(handle.record_id, None)

    def records(self) -> list[TxtRecordHandle]:
        with self._lock:
            return list(self._records.values())
