"""URL validation helpers for outbound HTTP requests (SSRF defense)."""

from __future__ import annotations

import ipaddress
import socket
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx

DEFAULT_PORTS = {"http": 80, "https": 443}
MAX_REDIRECTS = 5


def _is_ip_global(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    # Rejects loopback, link-local, private RFC1918, multicast and metadata ranges.
    return ip.is_global


def validate_outbound_url(url: str, schemes: tuple[str, ...] = ("http", "https")) -> str:
    """
    Validate a user-supplied URL the server is about to fetch.

    Security goals:
    - Prevent SSRF to localhost, RFC1918, link-local, cloud metadata, etc.
    - Allow only the given schemes.
    - Disallow credentials in the URL.

    Returns a normalized URL (lowercased scheme, fragment dropped) or raises ValueError.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ValueError("URL is required")

    parts = urlsplit(candidate)
    scheme = (parts.scheme or "").lower()
    if scheme not in schemes:
        raise ValueError(f"URL must start with {' or '.join(f'{s}://' for s in schemes)}")

    if not parts.netloc:
        raise ValueError("URL must include a host")

    if parts.username or parts.password:
        raise ValueError("URL must not include credentials")

    host = (parts.hostname or "").strip().lower().rstrip(".")
    if not host:
        raise ValueError("URL must include a host")

    normalized = urlunsplit((scheme, parts.netloc, parts.path, parts.query, ""))

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None
    if ip is not None:
        if not _is_ip_global(ip):
            raise ValueError("URL host is not allowed")
        return normalized

    # Resolve DNS to catch internal hostnames and tricky IP representations.
    try:
        port = parts.port or DEFAULT_PORTS[scheme]
    except ValueError as exc:
        raise ValueError("URL port is invalid") from exc
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except Exception as exc:
        raise ValueError("URL host could not be resolved") from exc

    resolved_ips: set[ipaddress.IPv4Address | ipaddress.IPv6Address] = set()
    for info in infos:
        sockaddr = info[4]
        if not sockaddr:
            continue
        try:
            resolved_ips.add(ipaddress.ip_address(sockaddr[0]))
        except ValueError:
            continue

    if not resolved_ips:
        raise ValueError("URL host could not be resolved")

    for resolved in resolved_ips:
        if not _is_ip_global(resolved):
            raise ValueError("URL host is not allowed")

    return normalized


async def get_public_url(
    client: httpx.AsyncClient, url: str, max_redirects: int = MAX_REDIRECTS
) -> httpx.Response:
    """
    GET a URL, following redirects by hand so every hop is validated.

    The client must not follow redirects itself. Raises ValueError when any
    hop points at a refused host or the redirect chain is too long.
    """
    target = validate_outbound_url(url)
    for _ in range(max_redirects + 1):
        response = await client.get(target, follow_redirects=False)
        location = response.headers.get("location")
        if not response.is_redirect or not location:
            return response
        target = validate_outbound_url(urljoin(str(response.url), location))
    raise ValueError("Too many redirects")
