"""Tests for the same-origin request guard"""
import pytest

from scriptdesk.utils.request_trust import (
    RequestTrustGuard,
    check_same_origin_or_no_origin,
    origin_host,
)

URL = "https://good.example/api/login"


@pytest.fixture
def guard() -> RequestTrustGuard:
    return RequestTrustGuard(["workers.dev"])


def test_cross_site_fetch_metadata_always_rejected(guard: RequestTrustGuard):
    headers = {
        "Sec-Fetch-Site": "cross-site",
        "Origin": "https://good.example",
        "Host": "good.example",
    }
    assert guard.check(headers, URL) is False


@pytest.mark.parametrize("site", ["same-origin", "same-site", "none"])
def test_non_cross_site_fetch_metadata_accepted(guard: RequestTrustGuard, site):
    headers = {"Sec-Fetch-Site": site, "Origin": "https://evil.example", "Host": "good.example"}
    assert guard.check(headers, URL) is True


def test_no_origin_no_metadata_accepted(guard: RequestTrustGuard):
    assert guard.check({"Host": "good.example"}, URL) is True
    assert guard.check({}, URL) is True


def test_foreign_origin_rejected(guard: RequestTrustGuard):
    headers = {"Origin": "https://evil.example", "Host": "good.example"}
    assert guard.check(headers, "https://good.example/x") is False


def test_matching_origin_accepted(guard: RequestTrustGuard):
    headers = {"Origin": "https://good.example", "Host": "good.example"}
    assert guard.check(headers, URL) is True


def test_origin_matches_forwarded_host(guard: RequestTrustGuard):
    headers = {
        "Origin": "https://public.example",
        "Host": "internal:8080",
        "X-Forwarded-Host": "public.example, proxy.local",
    }
    assert guard.check(headers, "http://internal:8080/api/login") is True


def test_host_comparison_is_normalized(guard: RequestTrustGuard):
    headers = {"Origin": "https://GOOD.example:443", "Host": "good.example."}
    assert guard.check(headers, URL) is True


def test_non_default_port_must_match(guard: RequestTrustGuard):
    headers = {"Origin": "https://good.example:8443", "Host": "good.example"}
    assert guard.check(headers, URL) is False

    headers = {"Origin": "http://localhost:3000", "Host": "localhost:3000"}
    assert guard.check(headers, "http://localhost:3000/api/login") is True


@pytest.mark.parametrize("origin", ["null", "", "not a url", "ftp://good.example", "https://"])
def test_unparsable_origin_rejected(guard: RequestTrustGuard, origin):
    headers = {"Origin": origin, "Host": "good.example"}
    assert guard.check(headers, URL) is False


def test_edge_default_host_is_not_trusted(guard: RequestTrustGuard):
    """An origin on the shared platform domain cannot vouch for itself"""
    headers = {"Origin": "https://app.acct.workers.dev", "Host": "app.acct.workers.dev"}
    assert guard.check(headers, "https://app.acct.workers.dev/api/login") is False


def test_ipv6_hosts(guard: RequestTrustGuard):
    headers = {"Origin": "http://[::1]:8000", "Host": "[::1]:8000"}
    assert guard.check(headers, "http://[::1]:8000/api/login") is True


def test_header_names_are_case_insensitive(guard: RequestTrustGuard):
    headers = {"origin": "https://evil.example", "HOST": "good.example"}
    assert guard.check(headers, "https://good.example/") is False


def test_origin_host():
    assert origin_host("https://Example.COM") == "example.com"
    assert origin_host("http://example.com:80") == "example.com"
    assert origin_host("https://example.com:80") == "example.com:80"
    assert origin_host("null") is None


def test_module_level_helper():
    headers = {"Origin": "https://evil.example", "Host": "good.example"}
    assert check_same_origin_or_no_origin(headers, URL) is False
    assert check_same_origin_or_no_origin({"Host": "good.example"}, URL) is True
