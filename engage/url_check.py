"""
url_check.py - Syntactic checks for advertiser URLs.

Only public web pages are accepted: http(s) scheme, a dotted hostname, no
embedded credentials, no localhost and no literal IP addresses. Nothing here
touches the network.
"""

import ipaddress
from typing import Optional
from urllib.parse import urlsplit

from engage.errors import ValidationError

MAX_URL_LENGTH = 2048
ALLOWED_SCHEMES = ("http", "https")

REASONS = {
    "INVALID_URL_FORMAT": "The URL format is invalid. Please check for typos.",
    "URL_TOO_LONG": f"URL exceeds maximum length of {MAX_URL_LENGTH} characters.",
    "LOCALHOST_NOT_ALLOWED": "Only public websites are allowed (no IPs or localhost).",
    "PRIVATE_IP_NOT_ALLOWED": "Only public websites are allowed (no IPs or localhost).",
    "IP_ADDRESS_NOT_ALLOWED": "Only public websites are allowed (no IPs or localhost).",
    "CREDENTIALS_NOT_ALLOWED": "URLs with embedded usernames or passwords are not allowed.",
    "INVALID_DOMAIN": "Only public websites with a valid domain are allowed.",
    "ONION_NOT_ALLOWED": "Tor hidden services (.onion) are not allowed.",
}

_LOCAL_SUFFIXES = (".localhost", ".local", ".internal")


def _verdict(url: str, reason: Optional[str] = None, host: str = "") -> dict:
    if reason is None:
        return {"valid": True, "verdict": "VALID", "url": url, "host": host}
    return {
        "valid": False,
        "verdict": "INVALID",
        "url": url,
        "host": host,
        "reason": reason,
        "message": REASONS[reason],
    }


def _literal_ip(host: str):
    try:
        return ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return None


def inspect_url(url) -> dict:
    """Classify ``url``; never raises."""
    if not isinstance(url, str) or not url.strip():
        return _verdict("", "INVALID_URL_FORMAT")
    url = url.strip()
    if len(url) > MAX_URL_LENGTH:
        return _verdict(url, "URL_TOO_LONG")
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        parts.port  # raises on a malformed port
    except ValueError:
        return _verdict(url, "INVALID_URL_FORMAT")

    if parts.scheme.lower() not in ALLOWED_SCHEMES or not host:
        return _verdict(url, "INVALID_URL_FORMAT", host)
    if parts.username is not None or parts.password is not None:
        return _verdict(url, "CREDENTIALS_NOT_ALLOWED", host)
    if host == "localhost" or host.endswith(_LOCAL_SUFFIXES):
        return _verdict(url, "LOCALHOST_NOT_ALLOWED", host)

    ip = _literal_ip(host)
    if ip is not None:
        if ip.is_loopback:
            return _verdict(url, "LOCALHOST_NOT_ALLOWED", host)
        if ip.is_private or ip.is_link_local or ip.is_reserved or ip.is_unspecified:
            return _verdict(url, "PRIVATE_IP_NOT_ALLOWED", host)
        return _verdict(url, "IP_ADDRESS_NOT_ALLOWED", host)

    if host.endswith(".onion"):
        return _verdict(url, "ONION_NOT_ALLOWED", host)
    labels = host.rstrip(".").split(".")
    if len(labels) < 2 or any(not label for label in labels) or not labels[-1].isalpha():
        return _verdict(url, "INVALID_DOMAIN", host)
    return _verdict(url, host=host)


def validate_campaign_url(url) -> str:
    result = inspect_url(url)
    if not result["valid"]:
        raise ValidationError(result["message"], details={"reason": result["reason"]})
    return result["url"]
