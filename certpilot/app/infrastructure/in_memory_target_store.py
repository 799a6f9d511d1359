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
"""Thread-safe in-memory target store."""

from __future__ import annotations

from threading import Lock

from certpilot.app.domain.models import Target


class InMemoryTargetStore:
    """Stores registered appliances in memory, keyed by target_id."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._targets: dict[str, Target] = {}

    def save(self, target: Target) -> None:
        with self._lock:
            self._targets[target.target_id] = target

    def list(self) -> list[Target]:
        with self._lock:
            return list(self._targets.values())

    def get(self, target_id: str) -> Target | None:
        with self._lock:
            return self._targets.get(target_id)

    def delete(self, target_id: str) -> bool:
        with self._lock:
            return self._targets.pop(target_id, None) is not None
