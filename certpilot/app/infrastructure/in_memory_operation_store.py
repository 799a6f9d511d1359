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
"""In-memory repository for operations."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Callable

from certpilot.app.domain.models import Operation, OperationKind


class InMemoryOperationStore:
    """Thread-safe operation repository with atomic check-and-create."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._operations: dict[str, Operation] = {}

    def _find_active_locked(self, target_id: str, kind: OperationKind) -> Operation | None:
        for operation in self._operations.values():
            if (
                operation.target_id == target_id
                and operation.kind == kind
                and operation.is_active
            ):
                return operation
        return None

    def find_active(self, target_id: str, kind: OperationKind) -> Operation | None:
        with self._lock:
            operation = self._find_active_locked(target_id, kind)
            return operation.snapshot() if operation else None

    def create_if_no_active(self, operation: Operation) -> tuple[Operation, bool]:
        """Store operation unless its (target, kind) already has an active one.

        Returns the stored operation (new or existing) and whether it was created.
        """
        with self._lock:
            existing = self._find_active_locked(operation.target_id, operation.kind)
            if existing is not None:
                return existing.snapshot(), False
            self._operations[operation.id] = operation
            return operation.snapshot(), True

    def get(self, operation_id: str) -> Operation | None:
        with self._lock:
            operation = self._operations.get(operation_id)
            return operation.snapshot() if operation else None

    def mutate(
        self, operation_id: str, apply: Callable[[Operation], None]
    ) -> Operation | None:
        """Apply a change under the store lock and return the new snapshot."""
        with self._lock:
            operation = self._operations.get(operation_id)
            if operation is None:
                return None
            apply(operation)
            return operation.snapshot()

    def list(self, target_id: str | None = None) -> list[Operation]:
        with self._lock:
            return [
                op.snapshot()
                for op in self._operations.values()
                if target_id is None or op.target_id == target_id
            ]

    def delete_terminal_before(self, cutoff: datetime) -> list[str]:
        """Delete terminal operations completed before cutoff; return their ids."""
        with self._lock:
            expired = [
                op.id
                for op in self._operations.values()
                if op.status.is_terminal
                and op.completed_at is not None
                and datetime.fromisoformat(op.completed_at) < cutoff
            ]
            for operation_id in expired:
                self._operations.pop(operation_id, None)
            return expired
