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
"""Thread-safe in-memory progress store and publisher."""

from threading import Lock

from certpilot.app.application.events import ProgressEvent, ProgressSink, utc_now
from certpilot.app.domain.models import Operation


class InMemoryProgressStore(ProgressSink):
    """Buffers operation updates per target for polling and websocket streaming.

    Indexes are absolute: once the per-target buffer exceeds ``max_events``
    the oldest events are dropped, but a cursor taken earlier stays valid.
    """

    def __init__(self, max_events: int = 1000) -> None:
        self._lock = Lock()
        self._max_events = max_events
        self._events_by_target: dict[str, list[ProgressEvent]] = {}
        self._dropped_by_target: dict[str, int] = {}

    def publish(self, target_id: str, operation: Operation) -> None:
        event = ProgressEvent(target_id=target_id, timestamp=utc_now(), operation=operation)
        with self._lock:
            events = self._events_by_target.setdefault(target_id, [])
            events.append(event)
            overflow = len(events) - self._max_events
            if overflow > 0:
                del events[:overflow]
                self._dropped_by_target[target_id] = (
                    self._dropped_by_target.get(target_id, 0) + overflow
                )

    def list_events(self, target_id: str, start_index: int = 0) -> list[ProgressEvent]:
        with self._lock:
            events = self._events_by_target.get(target_id, [])
            dropped = self._dropped_by_target.get(target_id, 0)
            return list(events[max(0, start_index - dropped):])

    def read_since(self, target_id: str, cursor: int) -> tuple[list[ProgressEvent], int]:
        """Events at absolute index >= cursor and the index after the last one."""
        with self._lock:
            events = self._events_by_target.get(target_id, [])
            dropped = self._dropped_by_target.get(target_id, 0)
            return list(events[max(0, cursor - dropped):]), dropped + len(events)

    def event_count(self, target_id: str) -> int:
        with self._lock:
            return len(self._events_by_target.get(target_id, [])) + self._dropped_by_target.get(
                target_id, 0
            )
