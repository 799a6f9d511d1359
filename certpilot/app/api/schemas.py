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
"""API schemas for the certificate automation service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from certpilot.app.domain.models import ApplicationType


class TargetRequest(BaseModel):
    """Payload to register or replace a target appliance."""

    target_id: Optional[str] = Field(default=None, min_length=1, max_length=100)
    hostname: str = Field(min_length=1, max_length=255)
    domain: str = Field(default="", max_length=255)
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=256)
    alt_names: List[str] = Field(default_factory=list)
    application_type: ApplicationType = ApplicationType.VOS
    ssh_port: int = Field(default=22, ge=1, le=65535)
    enable_ssh: bool = True
    auto_restart_service: bool = False
    auto_renew: bool = False


class TargetResponse(BaseModel):
    """Target details; credentials are never returned."""

    target_id: str
    hostname: str
    domain: str
    fqdn: str
    username: str
    alt_names: List[str]
    application_type: str
    ssh_port: int
    enable_ssh: bool
    auto_restart_service: bool
    auto_renew: bool


class OperationResponse(BaseModel):
    id: str
    target_id: str
    kind: str
    status: str
    progress: int
    message: str
    created_by: str
    started_at: str
    completed_at: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    logs: List[str] = Field(default_factory=list)


class StartOperationResponse(BaseModel):
    """Result of a start request; ``already_running`` marks a rejected duplicate."""

    operation: OperationResponse
    already_running: bool


class ActiveOperationResponse(BaseModel):
    active: bool
    operation: Optional[OperationResponse] = None


class CleanupResponse(BaseModel):
    removed: int
    max_age_minutes: int


class CandidateResponse(BaseModel):
    target_id: str
    domain: str
    due: bool
    reason: str
    expires_at: Optional[str] = None


class AutoRenewalRunResponse(BaseModel):
    checked_at: str
    candidates: List[CandidateResponse]
    started: List[OperationResponse]
