import os


def _parse_key_value_list(raw: str) -> dict:
    mapping: dict = {}
    if not raw:
        return mapping
    for entry in raw.split(","):
        entry = entry.strip()
        if "=" in entry:
            key, val = entry.split("=", 1)
            key = key.strip()
            val = val.strip()
            if key and val:
                mapping[key] = val
    return mapping


SERVICE_NAME = os.getenv("SERVICE_NAME", "origin-mirror")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = _parse_key_value_list(os.getenv("OTLP_HEADERS", ""))

PROXY_TIMEOUT = int(os.environ.get("PROXY_TIMEOUT", "300"))  # seconds
FOLLOW_REDIRECTS = os.environ.get("FOLLOW_REDIRECTS", "true").lower() == "true"
FORCE_HTTPS = os.environ.get("FORCE_HTTPS", "true").lower() == "true"

# Request header holding the original client IP, set by the edge in front of us
CLIENT_IP_HEADER = os.environ.get("CLIENT_IP_HEADER", "CF-Connecting-IP")

HSTS_HEADER = os.environ.get(
    "HSTS_HEADER", "max-age=31536000; includeSubDomains; preload"
)
