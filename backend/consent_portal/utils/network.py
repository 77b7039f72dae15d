from collections.abc import Mapping

UNKNOWN_ADDRESS = "unknown"


def extract_client_ip(headers: Mapping[str, str], peer_host: str | None = None) -> str:
    """Best-effort client address for the consent audit trail.

    Order of preference: first hop of X-Forwarded-For, X-Real-IP,
    CF-Connecting-IP, the transport peer, then "unknown".
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(header)
        if value and value.strip():
            return value.strip()

    return peer_host or UNKNOWN_ADDRESS
