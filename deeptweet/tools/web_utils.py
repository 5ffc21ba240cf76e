from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Absolute http(s) URL with a host."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def extract_domain(url: str) -> str:
    """Lowercased hostname, or ``""`` when the URL has none."""
    try:
        return (urlparse(url).hostname or "").lower()
    except Exception:
        return ""


def is_blocked(hostname: str | None, blocklist: list[str]) -> bool:
    """True when ``hostname`` is a blocklisted domain or one of its subdomains."""
    if not hostname:
        return False
    host = hostname.lower()
    return any(host == domain or host.endswith("." + domain) for domain in blocklist)


def clean_content(text: str, max_length: int = 4000) -> str:
    """Collapse whitespace and trim to ``max_length`` characters."""
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_length:
        text = text[:max_length]
    return text
