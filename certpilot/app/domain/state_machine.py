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
"""Finite state machines for operation status and renewal steps."""

from .models import OperationStatus, RenewalStep


class OperationStateMachine:
    """Validates operation status transitions."""

    _transitions = {
        OperationStatus.PENDING: {
            OperationStatus.PENDING,
            OperationStatus.IN_PROGRESS,
            OperationStatus.FAILED,
        },
        OperationStatus.IN_PROGRESS: {
            OperationStatus.IN_PROGRESS,
            OperationStatus.COMPLETED,
            OperationStatus.FAILED,
        },
    }

    def can_transition(self, status: OperationStatus, next_status: OperationStatus) -> bool:
        """Return True if next_status is reachable from status."""
        return next_status in self._transitions.get(status, set())

    def transition(
        self, status: OperationStatus, next_status: OperationStatus
    ) -> OperationStatus:
        """Return next_status or raise ValueError for invalid transitions."""
        if not self.can_transition(status, next_status):
            raise ValueError(
                f"Invalid transition: status={status.value}, next={next_status.value}"
            )
        return next_status


class RenewalStateMachine:
    """Linear renewal sequence; any non-terminal step may fail."""

    _sequence = (
        RenewalStep.PENDING,
        RenewalStep.GENERATING_CSR,
        RenewalStep.CREATING_ACCOUNT,
        RenewalStep.REQUESTING_CERTIFICATE,
        RenewalStep.CREATING_DNS_CHALLENGE,
        RenewalStep.WAITING_DNS_PROPAGATION,
        RenewalStep.COMPLETING_VALIDATION,
        RenewalStep.DOWNLOADING_CERTIFICATE,
        RenewalStep.UPLOADING_CERTIFICATE,
        RenewalStep.COMPLETED,
    )
    _terminal = frozenset({RenewalStep.COMPLETED, RenewalStep.FAILED})

    def next_step(self, step: RenewalStep) -> RenewalStep:
        """Successor of a non-terminal step."""
        if step in self._terminal:
            raise ValueError(f"Invalid transition: step={step.value} is terminal")
        return self._sequence[self._sequence.index(step) + 1]

    def can_transition(self, step: RenewalStep, next_step: RenewalStep) -> bool:
        if step in self._terminal:
            return False
        if next_step == RenewalStep.FAILED:
            return True
        return next_step == self.next_step(step)

    def transition(self, step: RenewalStep, next_step: RenewalStep) -> RenewalStep:
        """Return next_step or raise ValueError for invalid transitions."""
        if not self.can_transition(step, next_step):
            raise ValueError(
                f"Invalid transition: step={step.value}, next={next_step.value}"
            )
        return next_step
