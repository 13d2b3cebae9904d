"""
tests/test_config.py -- Unit tests for Settings parsing and SECRET_KEY policy.

Settings objects are constructed directly (not via get_settings()) so each
test controls its own inputs without touching the cached singleton.
"""

from __future__ import annotations

import pytest

from core.config import Settings


def test_comma_separated_lists_are_parsed() -> None:
    s = Settings(
        debug=True,
        admin_user_ids=" 1001, 1002 ,,",
        allowed_hosts="localhost, example.org",
        cors_origins="http://a.test",
    )
    assert s.admin_ids == frozenset({"1001", "1002"})
    assert s.allowed_host_list == ["localhost", "example.org"]
    assert s.cors_origin_list == ["http://a.test"]


def test_debug_generates_secret_key() -> None:
    s = Settings(debug=True, secret_key="")
    assert len(s.secret_key) >= 32


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValueError):
        Settings(debug=False, secret_key="")


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValueError):
        Settings(debug=True, secret_key="too-short")


def test_discord_enabled_needs_id_and_secret() -> None:
    assert Settings(debug=True, discord_client_id="x").discord_enabled is False
    assert Settings(debug=True, discord_client_id="x", discord_client_secret="y").discord_enabled is True
