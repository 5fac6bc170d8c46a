"""
Target address resolution for embedded frames.

The address a frame loads is the base location joined with a path, carrying
the caller's client id and any customization options as query parameters.
"""

from typing import Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from .config import DEFAULT_BASE_URL

QueryValue = Optional[Union[str, int, float, bool]]


def _query_value(value: QueryValue) -> str:
    # Absent values are kept as empty parameters, not dropped
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def create_link(
    client_id: str,
    path: str,
    query_params: Optional[Mapping[str, QueryValue]] = None,
    base_url: str = DEFAULT_BASE_URL,
) -> str:
    """
    Build the fully-qualified address of an embedded frame.

    Args:
        client_id: Caller identity token, set as ``clientId``
        path: Path of the embedded surface, resolved against base_url
        query_params: Optional customization options
        base_url: Base location

    Returns:
        The resolved address
    """
    url = urlsplit(urljoin(base_url, path))

    params: dict[str, str] = dict(parse_qsl(url.query, keep_blank_values=True))
    params["clientId"] = client_id
    if query_params:
        for key, value in query_params.items():
            params[key] = _query_value(value)

    return urlunsplit((url.scheme, url.netloc, url.path, urlencode(params), url.fragment))


def origin_of(address: str) -> str:
    """Get the ``scheme://host[:port]`` origin of an address."""
    url = urlsplit(address)
    return f"{url.scheme}://{url.netloc}"
