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
"""Streaming execution of long-running remote shell commands."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "admin:"
WELCOME_BANNER = "Welcome to the Platform Command Line Interface"

# Returns True for success, False for failure, None to keep reading.
CompletionRule = Callable[[str, str], Optional[bool]]


class RemoteSession(Protocol):
    """Interactive shell channel to an appliance."""

    def send(self, data: str) -> None:
        """Write raw text to the channel."""

    def receive(self) -> str:
        """Return pending output, or an empty string when nothing arrived."""

    def close(self) -> None:
        """Tear down the channel."""


@dataclass(frozen=True)
class LifecycleMarker:
    """Text marker that signals a phase of a remote command."""

    name: str
    token: str
    progress: int
    message: str


RESTART_MARKERS: tuple[LifecycleMarker, ...] = (
    LifecycleMarker(
        "stopping", "[STOPPING]", 60, "Cisco Tomcat service is stopping..."
    ),
    LifecycleMarker(
        "starting", "[STARTING]", 75, "Cisco Tomcat service is starting..."
    ),
    LifecycleMarker("running", "[RUNNING]", 85, "Cisco Tomcat service is running"),
)


@dataclass(frozen=True)
class StreamingResult:
    success: bool
    output: str
    error: Optional[str] = None
    timed_out: bool = False
    markers_seen: tuple[str, ...] = ()


def restart_completion(prompt: str = DEFAULT_PROMPT) -> CompletionRule:
    """Restart is done once the service came up and the prompt returned."""

    def rule(chunk: str, output: str) -> Optional[bool]:
        if ("[STARTED]" in output or "[STARTING]" in output) and prompt in chunk:
            return True
        if "[FAILED]" in output or "ERROR" in output:
            return False
        return None

    return rule


def prompt_completion(command: str, prompt: str = DEFAULT_PROMPT) -> CompletionRule:
    """Generic command is done once it was echoed and the prompt returned."""

    def rule(chunk: str, output: str) -> Optional[bool]:
        if prompt in chunk and command in output:
            return True
        return None

    return rule


class CommandStreamingCoordinator:
    """Runs a command over a RemoteSession and interprets its streamed output.

    Lifecycle markers are matched against both the latest chunk and the
    cumulative output, since a marker can straddle two chunks. Each marker
    fires once per call. A timeout is reported as an indeterminate success
    (``timed_out=True``); transport errors are failures.
    """

    def __init__(
        self,
        poll_interval: float = 0.2,
        prompt_wait: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.poll_interval = poll_interval
        self.prompt_wait = prompt_wait
        self._clock = clock
        self._sleep = sleep

    def execute_streaming(
        self,
        session: RemoteSession,
        command: str,
        on_chunk: Callable[[str, str], None] | None = None,
        timeout: float = 600.0,
        markers: Sequence[LifecycleMarker] = (),
        on_marker: Callable[[LifecycleMarker], None] | None = None,
        completion: CompletionRule | None = None,
        prompt: str | None = DEFAULT_PROMPT,
    ) -> StreamingResult:
        """Send command once the prompt shows (or immediately when prompt is None)."""
        rule = completion or prompt_completion(command, prompt or DEFAULT_PROMPT)
        started = self._clock()
        deadline = started + timeout
        output = ""
        seen: list[str] = []
        command_sent = False
        welcome_answered = False

        try:
            if prompt is None:
                session.send(f"{command}\r\n")
                command_sent = True

            while True:
                if self._clock() >= deadline:
                    logger.warning(
                        "Command %r did not confirm completion within %ss", command, timeout
                    )
                    return StreamingResult(
                        success=True,
                        output=output,
                        timed_out=True,
                        markers_seen=tuple(seen),
                    )

                chunk = session.receive()
                if not chunk:
                    if not command_sent and self._clock() - started >= self.prompt_wait:
                        logger.warning(
                            "Prompt not detected after %ss, sending command anyway",
                            self.prompt_wait,
                        )
                        session.send(f"{command}\r\n")
                        command_sent = True
                    self._sleep(self.poll_interval)
                    continue

                output += chunk
                logger.debug("Received %d bytes (total %d)", len(chunk), len(output))

                if not command_sent:
                    if not welcome_answered and WELCOME_BANNER in output:
                        welcome_answered = True
                        session.send("\r\n")
                    if prompt in chunk:
                        logger.info("Prompt detected, sending command: %s", command)
                        session.send(f"{command}\r\n")
                        command_sent = True
                    continue

                for marker in markers:
                    if marker.name in seen:
                        continue
                    if marker.token in chunk or marker.token in output:
                        seen.append(marker.name)
                        logger.info("Detected %s marker", marker.token)
                        self._notify(on_marker, marker)

                self._notify(on_chunk, chunk, output)

                verdict = rule(chunk, output)
                if verdict is True:
                    return StreamingResult(
                        success=True, output=output, markers_seen=tuple(seen)
                    )
                if verdict is False:
                    return StreamingResult(
                        success=False,
                        output=output,
                        error="Command reported failure",
                        markers_seen=tuple(seen),
                    )
        except Exception as exc:
            logger.error("Remote command %r aborted: %s", command, exc)
            return StreamingResult(
                success=False,
                output=output,
                error=f"Connection error: {exc}",
                markers_seen=tuple(seen),
            )

    @staticmethod
    def _notify(callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Streaming callback raised; continuing")
