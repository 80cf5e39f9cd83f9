API_MOUNT = "/api"


def resolve_root(base_url: str, resource: str) -> str:
    """Root URL of a backend resource.

    The base URL may be configured as a bare host or with the ``/api`` mount
    point already included; both resolve to a single ``/api`` segment.
    """
    if base_url.endswith(API_MOUNT):
        return f"{base_url}/{resource}"
    return f"{base_url}{API_MOUNT}/{resource}"
