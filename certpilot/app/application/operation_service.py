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
"""Application layer use-cases for operation admission and lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol
from uuid import uuid4

from certpilot.app.application.events import ProgressSink, utc_now
from certpilot.app.application.execution_control import ExecutionControl
from certpilot.app.domain.models import (
    CreatedBy,
    Operation,
    OperationKind,
    OperationStatus,
)
from certpilot.app.domain.state_machine import OperationStateMachine

logger = logging.getLogger(__name__)


class OperationRepository(Protocol):
    """Repository contract for operation persistence."""

    def create_if_no_active(self, operation: Operation) -> tuple[Operation, bool]:
        """Atomically store operation unless its (target, kind) is busy."""

    def find_active(self, target_id: str, kind: OperationKind) -> Operation | None:
        """Fetch the non-terminal operation for (target, kind)."""

    def get(self, operation_id: str) -> Operation | None:
        """Fetch an operation by ID."""

    def mutate(
        self, operation_id: str, apply: Callable[[Operation], None]
    ) -> Operation | None:
        """Apply a change atomically and return the updated snapshot."""

    def delete_terminal_before(self, cutoff: datetime) -> list[str]:
        """Delete terminal operations completed before cutoff."""


class ControlRepository(Protocol):
    """Repository contract for per-operation execution controls."""

    def get_or_create(self, operation_id: str) -> ExecutionControl:
        """Fetch or create the control for an operation."""

    def get(self, operation_id: str) -> ExecutionControl | None:
        """Fetch an existing control."""

    def discard(self, operation_id: str) -> None:
        """Forget the control for an operation."""


@dataclass(frozen=True)
class Admission:
    """Outcome of a start request.

    ``admitted`` is False when an operation for the same target and kind was
    already running; ``operation`` is then that existing operation.
    """

    operation: Operation
    admitted: bool


def format_log_line(message: str, timestamp: str | None = None) -> str:
    return f"[{timestamp or utc_now()}] {message}"


class OperationService:
    """Single-flight admission, state storage and broadcast for operations."""

    def __init__(
        self,
        repository: OperationRepository,
        progress_sink: ProgressSink,
        control_store: ControlRepository,
        state_machine: OperationStateMachine | None = None,
    ):
        self.repository = repository
        self.progress_sink = progress_sink
        self.control_store = control_store
        self.state_machine = state_machine or OperationStateMachine()

    def check_active(self, target_id: str, kind: OperationKind) -> Operation | None:
        """Non-mutating lookup of the in-flight operation for (target, kind)."""
        return self.repository.find_active(target_id, kind)

    def start(
        self,
        target_id: str,
        kind: OperationKind,
        created_by: CreatedBy = CreatedBy.USER,
        metadata: dict[str, Any] | None = None,
        message: str = "Operation queued",
    ) -> Admission:
        """Create a pending operation unless one is already active."""
        now = utc_now()
        candidate = Operation(
            id=str(uuid4()),
            target_id=target_id,
            kind=kind,
            status=OperationStatus.PENDING,
            created_by=created_by,
            started_at=now,
            message=message,
            metadata=dict(metadata or {}),
            logs=[format_log_line(message, now)],
        )
        operation, admitted = self.repository.create_if_no_active(candidate)
        if not admitted:
            logger.info(
                "Rejected duplicate %s for target %s; operation %s is %s",
                kind.value,
                target_id,
                operation.id,
                operation.status.value,
            )
            return Admission(operation=operation, admitted=False)

        self.control_store.get_or_create(operation.id)
        logger.info(
            "Started %s operation %s for target %s (created_by=%s)",
            kind.value,
            operation.id,
            target_id,
            created_by.value,
        )
        self.progress_sink.publish(target_id, operation)
        return Admission(operation=operation, admitted=True)

    def get(self, operation_id: str) -> Operation:
        operation = self.repository.get(operation_id)
        if operation is None:
            raise LookupError(f"Operation not found: {operation_id}")
        return operation

    def update(
        self,
        operation_id: str,
        *,
        status: OperationStatus | None = None,
        progress: int | None = None,
        message: str | None = None,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
        log: str | None = None,
    ) -> Operation:
        """Merge fields into the stored operation and broadcast the result.

        Progress never moves backwards while the operation is active. A
        changed message is appended to the logs; ``log`` appends an extra
        line verbatim (timestamped). Terminal operations are read-only.
        """

        def apply(operation: Operation) -> None:
            if operation.status.is_terminal:
                raise ValueError(
                    f"Operation is finished: id={operation.id}, status={operation.status.value}"
                )
            next_status = operation.status
            if status is not None:
                next_status = self.state_machine.transition(operation.status, status)

            now = utc_now()
            operation.status = next_status
            if progress is not None:
                operation.progress = max(operation.progress, max(0, min(100, int(progress))))
            if message is not None and message != operation.message:
                operation.message = message
                operation.logs.append(format_log_line(message, now))
            if log is not None:
                operation.logs.append(format_log_line(log, now))
            if error is not None:
                operation.error = error
            if metadata:
                operation.metadata.update(metadata)
            if next_status.is_terminal:
                operation.completed_at = now

        updated = self.repository.mutate(operation_id, apply)
        if updated is None:
            raise LookupError(f"Operation not found: {operation_id}")
        self.progress_sink.publish(updated.target_id, updated)
        return updated

    def request_cancel(self, operation_id: str) -> Operation:
        """Record a cancellation; the owning task observes it at its next step boundary."""
        operation = self.get(operation_id)
        if operation.status.is_terminal:
            raise ValueError(
                f"Operation is finished: id={operation_id}, status={operation.status.value}"
            )
        self.control_store.get_or_create(operation_id).cancel_event.set()
        logger.info("Cancellation requested for operation %s", operation_id)
        return operation

    def is_cancel_requested(self, operation_id: str) -> bool:
        control = self.control_store.get(operation_id)
        return bool(control and control.cancel_requested)

    def cleanup(self, max_age_minutes: int) -> int:
        """Delete terminal operations older than max_age_minutes; return the count."""
        if max_age_minutes < 0:
            raise ValueError("max_age_minutes must be >= 0")
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=max_age_minutes)
        removed = self.repository.delete_terminal_before(cutoff)
        for operation_id in removed:
            self.control_store.discard(operation_id)
        if removed:
            logger.info("Cleaned up %d finished operations", len(removed))
        return len(removed)
