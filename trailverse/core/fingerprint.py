"""
Anonymous identity derived from connection and header metadata.

No cookies and no accounts: the same client presenting the same headers
from the same address always maps to the same anonymous id.
"""
import hashlib
from dataclasses import dataclass, asdict
from typing import Dict

from fastapi import Request

# Order matters: it is part of the fingerprint
FINGERPRINT_HEADERS = (
    "user-agent",
    "accept-language",
    "accept-encoding",
    "accept",
    "connection",
    "upgrade-insecure-requests",
    "sec-fetch-site",
    "sec-fetch-mode",
    "sec-fetch-user",
    "sec-fetch-dest",
)


@dataclass(frozen=True)
class AnonymousIdentity:
    anonymous_id: str
    ip_address: str
    user_agent: str
    browser_fingerprint: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def get_client_ip(request: Request) -> str:
    """Socket peer address, then the first X-Forwarded-For hop, then "unknown"."""
    if request.client and request.client.host:
        return request.client.host
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    return "unknown"


def generate_browser_fingerprint(headers) -> str:
    """MD5 over the fixed header list joined with "|". Missing headers count as empty."""
    components = [headers.get(name, "") or "" for name in FINGERPRINT_HEADERS]
    return hashlib.md5("|".join(components).encode("utf-8")).hexdigest()


def generate_anonymous_id(ip_address: str, user_agent: str, fingerprint: str) -> str:
    digest = hashlib.sha256(f"{ip_address}-{user_agent}-{fingerprint}".encode("utf-8")).hexdigest()
    return f"anon_{digest[:16]}_{digest[16:22]}"


def derive_identity(request: Request) -> AnonymousIdentity:
    ip_address = get_client_ip(request)
    user_agent = request.headers.get("user-agent", "")
    fingerprint = generate_browser_fingerprint(request.headers)
    return AnonymousIdentity(
        anonymous_id=generate_anonymous_id(ip_address, user_agent, fingerprint),
        ip_address=ip_address,
        user_agent=user_agent,
        browser_fingerprint=fingerprint,
    )
