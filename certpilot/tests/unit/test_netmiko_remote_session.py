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
"""Unit tests for netmiko-backed remote sessions."""

import pytest
from netmiko.exceptions import NetmikoAuthenticationException, NetmikoTimeoutException

import certpilot.app.infrastructure.netmiko_remote_session as netmiko_session
from certpilot.app.domain.errors import TransportError
from certpilot.app.domain.models import Target
from certpilot.app.infrastructure.netmiko_remote_session import (
    NetmikoRemoteSession,
    NetmikoSessionFactory,
)


class FakeConnection:
    def __init__(self, error=None, **kwargs):
        self.kwargs = kwargs
        self.error = error
        self.established = False
        self.written = []
        self.pending = ["admin:"]
        self.disconnected = False

    def establish_connection(self):
        if self.error is not None:
            raise self.error
        self.established = True

    def write_channel(self, data):
        self.written.append(data)

    def read_channel(self):
        return self.pending.pop(0) if self.pending else ""

    def disconnect(self):
        self.disconnected = True


@pytest.fixture
def target():
    return Target(
        target_id="t1",
        hostname="cucm01",
        domain="example.com",
        username="admin",
        password="secret",
        ssh_port=2222,
    )


def test_open_connects_without_session_preparation(monkeypatch, target):
    created = []

    def fake_connect_handler(**kwargs):
        connection = FakeConnection(**kwargs)
        created.append(connection)
        return connection

    monkeypatch.setattr(netmiko_session, "ConnectHandler", fake_connect_handler)

    session = NetmikoSessionFactory(device_type="generic", timeout=5).open(target)

    connection = created[0]
    assert connection.established is True
    assert connection.kwargs == {
        "device_type": "generic",
        "host": "cucm01.example.com",
        "port": 2222,
        "username": "admin",
        "password": "secret",
        "timeout": 5,
        "auto_connect": False,
    }
    assert isinstance(session, NetmikoRemoteSession)


@pytest.mark.parametrize(
    "error,message",
    [
        (NetmikoAuthenticationException("bad password"), "Authentication failed"),
        (NetmikoTimeoutException("no route"), "Connection timeout"),
        (OSError("refused"), "Connection error"),
    ],
)
def test_open_maps_failures_to_transport_error(monkeypatch, target, error, message):
    monkeypatch.setattr(
        netmiko_session, "ConnectHandler", lambda **kwargs: FakeConnection(error=error, **kwargs)
    )

    with pytest.raises(TransportError, match=message):
        NetmikoSessionFactory().open(target)


def test_session_reads_and_writes_channel():
    connection = FakeConnection()
    session = NetmikoRemoteSession(connection)

    session.send("show myself\r\n")

    assert session.receive() == "admin:"
    assert session.receive() == ""
    assert connection.written == ["show myself\r\n"]
    session.close()
    assert connection.disconnected is True
