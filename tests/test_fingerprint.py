import hashlib
import re

from starlette.requests import Request

from trailverse.core.fingerprint import (
    FINGERPRINT_HEADERS,
    derive_identity,
    generate_anonymous_id,
    generate_browser_fingerprint,
    get_client_ip,
)

BROWSER_HEADERS = {
    "user-agent": "Mozilla/5.0 (Macintosh) Firefox/128.0",
    "accept-language": "en-US,en;q=0.9",
    "accept-encoding": "gzip, deflate, br",
    "accept": "application/json",
    "connection": "keep-alive",
    "sec-fetch-site": "same-origin",
    "sec-fetch-mode": "cors",
    "sec-fetch-dest": "empty",
}


def make_request(headers=None, client=("198.51.100.7", 52314)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/ai/chat-anonymous",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_identity_is_deterministic():
    first = derive_identity(make_request(BROWSER_HEADERS))
    second = derive_identity(make_request(BROWSER_HEADERS))
    assert first == second
    assert re.fullmatch(r"anon_[0-9a-f]{16}_[0-9a-f]{6}", first.anonymous_id)


def test_anonymous_id_layout_matches_sha256():
    digest = hashlib.sha256(b"10.0.0.1-agent-abc").hexdigest()
    assert generate_anonymous_id("10.0.0.1", "agent", "abc") == f"anon_{digest[:16]}_{digest[16:22]}"


def test_fingerprint_is_md5_of_ordered_headers():
    expected_source = "|".join(BROWSER_HEADERS.get(name, "") for name in FINGERPRINT_HEADERS)
    expected = hashlib.md5(expected_source.encode()).hexdigest()
    assert generate_browser_fingerprint(make_request(BROWSER_HEADERS).headers) == expected


def test_any_header_change_changes_the_id():
    base = derive_identity(make_request(BROWSER_HEADERS)).anonymous_id
    seen = {base}
    for name in ("accept-language", "accept-encoding", "sec-fetch-mode", "user-agent"):
        headers = dict(BROWSER_HEADERS, **{name: BROWSER_HEADERS[name] + "-x"})
        seen.add(derive_identity(make_request(headers)).anonymous_id)
    assert len(seen) == 5


def test_different_ip_gives_different_id():
    a = derive_identity(make_request(BROWSER_HEADERS, client=("198.51.100.7", 1)))
    b = derive_identity(make_request(BROWSER_HEADERS, client=("198.51.100.8", 1)))
    assert a.browser_fingerprint == b.browser_fingerprint
    assert a.anonymous_id != b.anonymous_id


def test_client_ip_precedence():
    assert get_client_ip(make_request({"x-forwarded-for": "203.0.113.9"})) == "198.51.100.7"
    assert get_client_ip(make_request({"x-forwarded-for": "203.0.113.9, 10.0.0.1"}, client=None)) == "203.0.113.9"
    assert get_client_ip(make_request({}, client=None)) == "unknown"


def test_empty_request_still_produces_identity():
    identity = derive_identity(make_request({}, client=None))
    assert identity.ip_address == "unknown"
    assert identity.user_agent == ""
    assert identity.browser_fingerprint == hashlib.md5(("|" * (len(FINGERPRINT_HEADERS) - 1)).encode()).hexdigest()
    assert identity.anonymous_id.startswith("anon_")
