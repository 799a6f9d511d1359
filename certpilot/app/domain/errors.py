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
"""Error taxonomy for operation failures."""


class OperationError(Exception):
    """Base class for failures that end an operation."""

    kind = "internal"


class ConfigurationError(OperationError):
    """Missing or invalid configuration. Not retried."""

    kind = "configuration"


class ProtocolError(OperationError):
    """An external API rejected a request; message is the upstream one."""

    kind = "protocol"


class VerificationTimeoutError(OperationError):
    """Polling for DNS propagation or order completion ran past its deadline."""

    kind = "verification_timeout"


class TransportError(OperationError):
    """Network or authentication failure talking to a remote system."""

    kind = "transport"


class OperationCancelledError(OperationError):
    """Cancellation observed at a step boundary."""

    kind = "cancelled"
