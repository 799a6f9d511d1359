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
"""Unit tests for scheduled auto-renewal."""

from datetime import datetime, timedelta, timezone
from threading import Event

import pytest

from certpilot.app.application.auto_renewal import AutoRenewalScheduler
from certpilot.app.application.operation_service import OperationService
from certpilot.app.domain.errors import ConfigurationError
from certpilot.app.domain.models import (
    CertificateArtifactSet,
    CreatedBy,
    Environment,
    OperationKind,
    Target,
)
from certpilot.app.infrastructure.file_artifact_store import FileArtifactStore
from certpilot.app.infrastructure.in_memory_control_store import InMemoryControlStore
from certpilot.app.infrastructure.in_memory_operation_store import InMemoryOperationStore
from certpilot.app.infrastructure.in_memory_progress_store import InMemoryProgressStore
from certpilot.app.infrastructure.in_memory_target_store import InMemoryTargetStore


class StubRenewals:
    """Admits renewals through real admission control without running them."""

    def __init__(self, error=None):
        self.operations = OperationService(
            repository=InMemoryOperationStore(),
            progress_sink=InMemoryProgressStore(),
            control_store=InMemoryControlStore(),
        )
        self.error = error
        self.calls = []

    def start_renewal(self, target_id, created_by=CreatedBy.USER):
        self.calls.append((target_id, created_by))
        if self.error is not None:
            raise self.error
        return self.operations.start(
            target_id, OperationKind.CERTIFICATE_RENEWAL, created_by=created_by
        )


def make_target(target_id, auto_renew=True):
    return Target(
        target_id=target_id,
        hostname=target_id,
        domain="example.com",
        username="admin",
        password="secret",
        auto_renew=auto_renew,
    )


def store_certificate(store, domain, pem):
    store.save_certificate(
        CertificateArtifactSet(
            domain=domain,
            environment=Environment.STAGING,
            certificate=pem,
            chain="",
            full_chain=pem,
        )
    )


def build(tmp_path, renewals=None, **kwargs):
    targets = InMemoryTargetStore()
    store = FileArtifactStore(tmp_path)
    scheduler = AutoRenewalScheduler(
        renewals=renewals or StubRenewals(),
        targets=targets,
        certificates=store,
        environment=Environment.STAGING,
        **kwargs,
    )
    return scheduler, targets, store


def test_check_target_compares_expiry_with_window(tmp_path, make_certificate):
    scheduler, _targets, store = build(tmp_path, renew_within_days=7)
    store_certificate(store, "soon.example.com", make_certificate("soon.example.com", days=3))
    store_certificate(store, "later.example.com", make_certificate("later.example.com", days=60))

    soon = scheduler.check_target(make_target("soon"))
    later = scheduler.check_target(make_target("later"))
    missing = scheduler.check_target(make_target("missing"))

    assert soon.due is True
    assert soon.reason == "expires in 2 day(s)"
    assert soon.expires_at is not None
    assert later.due is False
    assert later.reason.startswith("valid for 59")
    assert missing.due is False
    assert missing.reason == "no stored certificate"


def test_expired_certificate_is_due(tmp_path, make_certificate):
    two_days_ahead = datetime.now(timezone.utc) + timedelta(days=2)
    scheduler, _targets, store = build(tmp_path, now=lambda: two_days_ahead)
    store_certificate(store, "old.example.com", make_certificate("old.example.com", days=1))

    candidate = scheduler.check_target(make_target("old"))

    assert candidate.due is True
    assert candidate.reason == "expired"


def test_unreadable_certificate_is_skipped(tmp_path):
    scheduler, _targets, store = build(tmp_path)
    store_certificate(store, "broken.example.com", "not a certificate")

    candidate = scheduler.check_target(make_target("broken"))

    assert candidate.due is False
    assert "Invalid certificate" in candidate.reason


def test_sweep_starts_only_due_auto_renew_targets(tmp_path, make_certificate):
    renewals = StubRenewals()
    scheduler, targets, store = build(tmp_path, renewals=renewals)
    for name, auto_renew, days in [("due", True, 2), ("fresh", True, 60), ("manual", False, 2)]:
        targets.save(make_target(name, auto_renew=auto_renew))
        store_certificate(store, f"{name}.example.com", make_certificate(name, days=days))

    result = scheduler.sweep()

    assert renewals.calls == [("due", CreatedBy.CRON)]
    assert [a.operation.target_id for a in result.started] == ["due"]
    assert result.started[0].operation.created_by == CreatedBy.CRON
    assert sorted(c.target_id for c in result.candidates) == ["due", "fresh"]
    assert scheduler.last_result is result


def test_sweep_does_not_count_running_renewal_twice(tmp_path, make_certificate):
    renewals = StubRenewals()
    scheduler, targets, store = build(tmp_path, renewals=renewals)
    targets.save(make_target("due"))
    store_certificate(store, "due.example.com", make_certificate("due", days=2))

    first = scheduler.sweep()
    second = scheduler.sweep()

    assert len(first.started) == 1
    assert second.started == []
    assert len(renewals.calls) == 2


def test_sweep_continues_after_rejected_start(tmp_path, make_certificate):
    renewals = StubRenewals(error=ConfigurationError("no FQDN"))
    scheduler, targets, store = build(tmp_path, renewals=renewals)
    targets.save(make_target("a"))
    targets.save(make_target("b"))
    store_certificate(store, "a.example.com", make_certificate("a", days=2))
    store_certificate(store, "b.example.com", make_certificate("b", days=2))

    result = scheduler.sweep()

    assert result.started == []
    assert [call[0] for call in renewals.calls] == ["a", "b"]


def test_run_forever_waits_one_interval_before_each_sweep(tmp_path, fake_clock, make_certificate):
    renewals = StubRenewals()
    stop = Event()

    def sleep(seconds):
        fake_clock.sleep(seconds)
        if len(fake_clock.sleeps) == 3:
            stop.set()

    scheduler, targets, store = build(tmp_path, renewals=renewals, interval=3600, sleep=sleep)
    targets.save(make_target("due"))
    store_certificate(store, "due.example.com", make_certificate("due", days=2))

    scheduler.run_forever(stop)

    assert fake_clock.sleeps == [3600, 3600, 3600]
    assert len(renewals.calls) == 2
    assert fake_clock() == 10800


def test_run_forever_survives_unexpected_errors(tmp_path, fake_clock, make_certificate):
    renewals = StubRenewals(error=RuntimeError("store offline"))
    stop = Event()

    def sleep(seconds):
        fake_clock.sleep(seconds)
        if len(fake_clock.sleeps) == 3:
            stop.set()

    scheduler, targets, store = build(tmp_path, renewals=renewals, sleep=sleep)
    targets.save(make_target("due"))
    store_certificate(store, "due.example.com", make_certificate("due", days=2))

    scheduler.run_forever(stop)

    assert len(renewals.calls) == 2


def test_start_runs_one_background_thread_until_stopped(tmp_path):
    scheduler, _targets, _store = build(tmp_path, interval=3600)

    assert scheduler.start() is True
    assert scheduler.start() is False
    scheduler.stop(timeout=5)
    assert scheduler.start() is True
    scheduler.stop(timeout=5)


@pytest.mark.parametrize("days,interval", [(-1, 60), (7, 0)])
def test_rejects_invalid_schedule(tmp_path, days, interval):
    with pytest.raises(ValueError):
        build(tmp_path, renew_within_days=days, interval=interval)
