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
"""Service restart and SSH test use-cases over remote sessions."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from certpilot.app.application.command_streaming import (
    RESTART_MARKERS,
    CommandStreamingCoordinator,
    LifecycleMarker,
    RemoteSession,
    prompt_completion,
    restart_completion,
)
from certpilot.app.application.operation_service import Admission, OperationService
from certpilot.app.application.renewal_engine import (
    ArtifactStore,
    BackgroundRunner,
    TargetResolver,
)
from certpilot.app.domain.errors import ConfigurationError
from certpilot.app.domain.models import (
    ApplicationType,
    CreatedBy,
    OperationKind,
    OperationStatus,
    Target,
)

logger = logging.getLogger(__name__)

DEFAULT_RESTART_COMMAND = "utils service restart Cisco Tomcat"
SSH_TEST_COMMAND = "show myself"
TIMEOUT_MESSAGE = (
    "Service restart initiated - confirmation timed out. Manual verification recommended."
)


class SessionFactory(Protocol):
    def open(self, target: Target) -> RemoteSession:
        """Open an authenticated shell on the target."""


class RemoteOperations:
    """Admission-controlled remote commands against a target."""

    def __init__(
        self,
        operations: OperationService,
        targets: TargetResolver,
        sessions: SessionFactory,
        streaming: CommandStreamingCoordinator,
        runner: BackgroundRunner,
        artifacts: ArtifactStore | None = None,
        restart_command: str = DEFAULT_RESTART_COMMAND,
        restart_timeout: float = 600.0,
        ssh_test_timeout: float = 30.0,
    ):
        self.operations = operations
        self.targets = targets
        self.sessions = sessions
        self.streaming = streaming
        self.runner = runner
        self.artifacts = artifacts
        self.restart_command = restart_command
        self.restart_timeout = restart_timeout
        self.ssh_test_timeout = ssh_test_timeout

    def _resolve(self, target_id: str) -> Target:
        target = self.targets.get(target_id)
        if target is None:
            raise LookupError(f"Target not found: {target_id}")
        if not target.enable_ssh:
            raise ConfigurationError(f"SSH is disabled for target {target_id}")
        if target.application_type != ApplicationType.VOS.value:
            raise ConfigurationError(
                "Remote commands are only supported on VOS targets, "
                f"not {target.application_type!r}"
            )
        if not target.fqdn:
            raise ConfigurationError(f"Target {target_id} has no resolvable FQDN")
        return target

    def start_service_restart(
        self, target_id: str, created_by: CreatedBy = CreatedBy.USER
    ) -> Admission:
        target = self._resolve(target_id)
        admission = self.operations.start(
            target_id,
            OperationKind.SERVICE_RESTART,
            created_by=created_by,
            metadata={"command": self.restart_command},
            message="Service restart queued",
        )
        if admission.admitted:
            operation_id = admission.operation.id
            self.runner.start(
                operation_id, lambda: self.run_service_restart(operation_id, target)
            )
        return admission

    def start_ssh_test(
        self, target_id: str, created_by: CreatedBy = CreatedBy.USER
    ) -> Admission:
        target = self._resolve(target_id)
        admission = self.operations.start(
            target_id,
            OperationKind.SSH_TEST,
            created_by=created_by,
            message="SSH connection test queued",
        )
        if admission.admitted:
            operation_id = admission.operation.id
            self.runner.start(operation_id, lambda: self.run_ssh_test(operation_id, target))
        return admission

    def run_service_restart(self, operation_id: str, target: Target) -> None:
        try:
            self._restart(operation_id, target)
        except Exception as exc:
            logger.exception("Service restart %s crashed", operation_id)
            self._fail(
                operation_id,
                target,
                f"Internal error during service restart: {exc}",
                kind="internal",
            )

    def _restart(self, operation_id: str, target: Target) -> None:
        fqdn = target.fqdn
        self._domain_log(target, f"Service restart initiated for {fqdn}")
        self._update(
            operation_id,
            target,
            status=OperationStatus.IN_PROGRESS,
            progress=10,
            message="Testing SSH connection...",
        )
        try:
            session = self.sessions.open(target)
        except Exception as exc:
            self._fail(operation_id, target, f"SSH connection failed: {exc}")
            return

        try:
            if self.operations.is_cancel_requested(operation_id):
                self._fail(
                    operation_id,
                    target,
                    "Service restart cancelled by request",
                    kind="cancelled",
                )
                return
            self._update(
                operation_id,
                target,
                progress=30,
                message="SSH connection successful. Starting Cisco Tomcat service restart...",
            )
            self._update(
                operation_id,
                target,
                progress=50,
                message="Executing Cisco Tomcat service restart command...",
            )

            def on_marker(marker: LifecycleMarker) -> None:
                self._update(
                    operation_id, target, progress=marker.progress, message=marker.message
                )

            result = self.streaming.execute_streaming(
                session,
                self.restart_command,
                timeout=self.restart_timeout,
                markers=RESTART_MARKERS,
                on_marker=on_marker,
                completion=restart_completion(),
            )
        finally:
            self._close(session, target)

        self._update(operation_id, target, progress=90, message="Processing restart results...")

        if result.timed_out:
            logger.warning(
                "Service restart confirmation timed out for %s; service is likely still restarting",
                fqdn,
            )
            self._update(
                operation_id,
                target,
                status=OperationStatus.COMPLETED,
                progress=100,
                message=TIMEOUT_MESSAGE,
                metadata={"output": result.output, "timed_out": True},
            )
        elif result.success:
            logger.info("Restarted Cisco Tomcat service on %s", fqdn)
            self._update(
                operation_id,
                target,
                status=OperationStatus.COMPLETED,
                progress=100,
                message="Cisco Tomcat service restart completed successfully",
                metadata={
                    "output": result.output or "Service restart command executed",
                    "timed_out": False,
                },
            )
        else:
            self._fail(
                operation_id,
                target,
                f"Service restart failed: {result.error}",
                metadata={"output": result.output},
                kind="transport"
                if (result.error or "").startswith("Connection error")
                else "protocol",
            )

    def run_ssh_test(self, operation_id: str, target: Target) -> None:
        try:
            self._ssh_test(operation_id, target)
        except Exception as exc:
            logger.exception("SSH test %s crashed", operation_id)
            self._fail(
                operation_id,
                target,
                f"Internal error during SSH test: {exc}",
                kind="internal",
            )

    def _ssh_test(self, operation_id: str, target: Target) -> None:
        self._update(
            operation_id,
            target,
            status=OperationStatus.IN_PROGRESS,
            progress=10,
            message=f"Connecting to {target.fqdn}:{target.ssh_port}...",
        )
        try:
            session = self.sessions.open(target)
        except Exception as exc:
            self._fail(operation_id, target, f"SSH connection failed: {exc}")
            return

        try:
            self._update(operation_id, target, progress=50, message="Waiting for CLI prompt...")
            result = self.streaming.execute_streaming(
                session,
                SSH_TEST_COMMAND,
                timeout=self.ssh_test_timeout,
                completion=prompt_completion(SSH_TEST_COMMAND),
            )
        finally:
            self._close(session, target)

        if result.success and not result.timed_out:
            self._update(
                operation_id,
                target,
                status=OperationStatus.COMPLETED,
                progress=100,
                message="SSH connection successful",
                metadata={"output": result.output},
            )
        elif result.timed_out:
            self._fail(
                operation_id,
                target,
                "Connected but did not receive expected CLI prompt (admin:)",
                metadata={"output": result.output},
                kind="verification_timeout",
            )
        else:
            self._fail(operation_id, target, f"SSH connection failed: {result.error}")

    def _update(self, operation_id: str, target: Target, **fields: Any) -> None:
        self.operations.update(operation_id, **fields)
        message = fields.get("message")
        if message:
            self._domain_log(target, message)

    def _fail(
        self,
        operation_id: str,
        target: Target,
        error: str,
        metadata: dict[str, Any] | None = None,
        kind: str = "transport",
    ) -> None:
        logger.error("Operation %s on %s failed: %s", operation_id, target.fqdn, error)
        self.operations.update(
            operation_id,
            status=OperationStatus.FAILED,
            error=error,
            log=f"ERROR: {error}",
            metadata={**(metadata or {}), "error_kind": kind},
        )
        self._domain_log(target, error)

    def _close(self, session: RemoteSession, target: Target) -> None:
        try:
            session.close()
        except Exception as exc:
            logger.warning("Failed to close session to %s: %s", target.fqdn, exc)

    def _domain_log(self, target: Target, line: str) -> None:
        if self.artifacts is None:
            return
        try:
            self.artifacts.append_log(target.fqdn, line)
        except OSError as exc:
            logger.warning("Could not write renewal log for %s: %s", target.fqdn, exc)
