"""Test fixtures and utilities for consul-mutex."""

from tests.fixtures.mock_consul import (
    HOSTNAME,
    KEY_PATH,
    SESSION,
    FakeConsul,
    Reply,
    blocking,
    bool_reply,
    json_reply,
    key_reply,
    not_found,
    raising,
    status_reply,
)

__all__ = [
    "FakeConsul",
    "HOSTNAME",
    "KEY_PATH",
    "Reply",
    "SESSION",
    "blocking",
    "bool_reply",
    "json_reply",
    "key_reply",
    "not_found",
    "raising",
    "status_reply",
]
