import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

# Proxy paths look like /https://example.com/page, the "//" may be collapsed
UPSTREAM_REF_PATTERN = re.compile(r"/(https?:)/+(.*)", re.DOTALL)


class InvalidURLError(ValueError):
    """Raised when a string cannot be used as an absolute URL."""


@dataclass(frozen=True)
class Endpoint:
    """An absolute URL split into the parts the rewriters work with."""

    href: str
    scheme: str
    hostname: str
    port: Optional[int]
    path: str

    @classmethod
    def parse(cls, url: str) -> "Endpoint":
        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError as e:
            raise InvalidURLError(f"Invalid URL {url!r}: {e}") from e

        if not parts.scheme or not parts.hostname:
            raise InvalidURLError(f"Not an absolute URL: {url!r}")

        scheme = parts.scheme.lower()
        if port == DEFAULT_PORTS.get(scheme):
            port = None

        # IPv6 literals keep their brackets, as they appear in URLs and Host
        hostname = parts.hostname
        if ":" in hostname:
            hostname = f"[{hostname}]"

        return cls(
            href=url,
            scheme=scheme,
            hostname=hostname,
            port=port,
            path=parts.path or "/",
        )

    @property
    def host_port(self) -> str:
        if self.port is None:
            return self.hostname
        return f"{self.hostname}:{self.port}"

    @property
    def origin(self) -> str:
        return f"{self.scheme}://{self.host_port}"

    @property
    def protocol(self) -> str:
        return f"{self.scheme}:"


@dataclass(frozen=True)
class OriginPair:
    upstream: Endpoint
    public: Endpoint


def encode_upstream_ref(proxy_origin: str, upstream_url: str) -> str:
    """Embed an absolute upstream URL as a path under the proxy origin."""
    return f"{proxy_origin}/{upstream_url}"


def decode_upstream_ref(path: str) -> Optional[str]:
    """
    Recover the upstream URL from a proxy path (query string included).

    Returns None when the path does not carry an http(s) URL.
    """
    match = UPSTREAM_REF_PATTERN.search(path)
    if not match:
        return None
    return f"{match.group(1)}//{match.group(2)}"
