"""
Global pytest configuration and fixtures for consul-mutex tests.
"""

import pytest

from consul_mutex.keys import LockKey
from consul_mutex.mutex import ConsulMutex
from consul_mutex.session import SessionManager
from consul_mutex.transport import ConsulTransport
from tests.fixtures.mock_consul import HOSTNAME, FakeConsul


@pytest.fixture
def fake_consul():
    """Scripted Consul agent."""
    return FakeConsul()


@pytest.fixture
def consul_transport(fake_consul):
    """Transport talking to the fake agent."""
    return ConsulTransport("http://localhost:8500", transport=fake_consul.transport)


@pytest.fixture
def lock_key(consul_transport):
    return LockKey(consul_transport, "some/lock")


@pytest.fixture
def sessions(consul_transport):
    return SessionManager(consul_transport)


@pytest.fixture
def mutex(fake_consul):
    """Mutex on /some/lock publishing the hostname, like the default."""
    return ConsulMutex("/some/lock", value=HOSTNAME, transport=fake_consul.transport)
