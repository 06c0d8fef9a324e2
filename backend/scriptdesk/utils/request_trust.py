"""Same-origin guard for mutating requests.

Defense in depth on top of SameSite=Lax cookies, not the only CSRF control:

1. ``Sec-Fetch-Site`` present: reject only ``cross-site``. The browser sets
   it from its own view of initiator and target, so proxies rewriting Host
   cannot fool it.
2. No ``Origin`` header: pass. Non-browser and legacy clients are not
   penalised.
3. Otherwise the Origin host must be one of the hosts this server answers
   to: ``Host``, ``X-Forwarded-Host`` and the request URL host, excluding
   edge-platform default domains.
"""
from typing import Iterable, Mapping, Optional, Set
from urllib.parse import urlsplit

from scriptdesk.utils.request import first_header_value

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _normalize_host(netloc: str, scheme: Optional[str] = None) -> Optional[str]:
    """``host[:port]`` lowercased, trailing dot removed, default port dropped."""
    if not netloc:
        return None
    try:
        parts = urlsplit(f"//{netloc}")
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return None
    if not hostname:
        return None

    hostname = hostname.rstrip(".")
    if not hostname:
        return None
    if ":" in hostname:
        hostname = f"[{hostname}]"

    if port is None:
        return hostname
    if scheme is not None:
        if _DEFAULT_PORTS.get(scheme) == port:
            return hostname
    elif port in (80, 443):
        return hostname
    return f"{hostname}:{port}"


def origin_host(origin: str) -> Optional[str]:
    """Normalized host of an ``Origin`` header value; None for ``null`` or garbage."""
    try:
        parts = urlsplit(origin.strip())
    except ValueError:
        return None
    if parts.scheme not in _DEFAULT_PORTS or not parts.netloc:
        return None
    return _normalize_host(parts.netloc, parts.scheme)


def _is_edge_default_host(host: str, suffixes: Iterable[str]) -> bool:
    name = host.rsplit(":", 1)[0] if not host.endswith("]") else host
    return any(name == suffix or name.endswith("." + suffix) for suffix in suffixes)


class RequestTrustGuard:
    def __init__(self, edge_host_suffixes: Iterable[str] = ()):
        self.edge_host_suffixes = tuple(s.lower().strip(".") for s in edge_host_suffixes if s)

    def server_hosts(self, headers: Mapping[str, str], url: str) -> Set[str]:
        """Hosts the server considers itself reachable under for this request."""
        candidates = [
            first_header_value(headers.get("host")),
            first_header_value(headers.get("x-forwarded-host")),
        ]
        try:
            candidates.append(urlsplit(url).netloc)
        except ValueError:
            pass

        hosts = set()
        for candidate in candidates:
            host = _normalize_host(candidate)
            if host and not _is_edge_default_host(host, self.edge_host_suffixes):
                hosts.add(host)
        return hosts

    def check(self, headers: Mapping[str, str], url: str) -> bool:
        """True when the request may proceed."""
        lowered = {key.lower(): value for key, value in headers.items()}

        fetch_site = lowered.get("sec-fetch-site")
        if fetch_site is not None and fetch_site.strip():
            return fetch_site.strip().lower() != "cross-site"

        origin = lowered.get("origin")
        if origin is None:
            return True

        host = origin_host(origin)
        if host is None:
            return False
        return host in self.server_hosts(lowered, url)


def check_same_origin_or_no_origin(
    headers: Mapping[str, str],
    url: str,
    edge_host_suffixes: Iterable[str] = (),
) -> bool:
    return RequestTrustGuard(edge_host_suffixes).check(headers, url)
