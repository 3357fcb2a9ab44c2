import pytest

from lab_inventory.base_url import require_base_url, resolve_base_url
from lab_inventory.errors import ResolutionFailure


def test_override_wins_over_headers():
    headers = {
        "Host": "internal:8000",
        "X-Forwarded-Host": "preview.example.app",
        "X-Forwarded-Proto": "http",
    }
    for override in ("https://inventory.example.org", "https://inventory.example.org/"):
        assert resolve_base_url(headers, override) == "https://inventory.example.org"
    assert resolve_base_url({}, "http://localhost:5050") == "http://localhost:5050"


def test_forwarded_headers_preferred_over_host():
    headers = {
        "Host": "10.0.0.5:8000",
        "X-Forwarded-Host": "lab.example.org, proxy.internal",
        "X-Forwarded-Proto": "HTTPS, http",
    }
    assert resolve_base_url(headers) == "https://lab.example.org"


def test_host_header_with_default_scheme():
    assert resolve_base_url({"Host": "localhost:5050"}) == "https://localhost:5050"
    assert resolve_base_url({"Host": "localhost:5050", "X-Forwarded-Proto": "http"}) == "http://localhost:5050"


def test_blank_override_is_ignored():
    assert resolve_base_url({"Host": "lab.local"}, "   ") == "https://lab.local"


def test_no_host_fails_closed():
    assert resolve_base_url({"X-Forwarded-Proto": "https"}) == ""
    with pytest.raises(ResolutionFailure):
        require_base_url({"X-Forwarded-Proto": "https"})
