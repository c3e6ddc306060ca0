import pytest
from starlette.requests import Request

from snipvault.core.gateways import default_scopes, extract_host, is_maintenance_enabled

pytestmark = pytest.mark.unit


def _request(headers):
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


@pytest.mark.parametrize("headers, expected", [
    ({"Host": "Example.COM:8080"}, "example.com"),
    ({"Host": "internal", "X-Forwarded-Host": "app.example.com, proxy.local"}, "app.example.com"),
    ({"Host": "[::1]:8000"}, "::1"),
    ({}, None),
])
def test_extract_host(headers, expected):
    assert extract_host(_request(headers)) == expected


@pytest.mark.parametrize("value, enabled", [
    ("ON", True), ("true", True), ("1", True), ("Enabled", True),
    ("OFF", False), ("yes", False), ("", False),
])
def test_maintenance_truthiness(settings_store, value, enabled):
    settings_store.set_string("maintenance.mode", value)
    assert is_maintenance_enabled(settings_store) is enabled


def test_scope_prefixes_follow_base_path():
    assert default_scopes("/vault") == [
        ("/vault/api/auth", "auth"),
        ("/vault/api/public", "public"),
        ("/vault/api", "general"),
    ]
