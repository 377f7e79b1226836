"""Announce this node to the control-plane API.

Registration is best effort: a non-2xx answer or a network failure is
logged and never stops the node from serving.
"""

from __future__ import annotations

from typing import Any

import httpx

from virald._logging import get_logger

logger = get_logger(__name__)


async def register_with_server(
    api_url: str,
    node_address: str,
    *,
    timeout: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> Any | None:
    """POST ``{"address": node_address}`` to ``<api_url>/register``.

    Args:
        api_url: Control-plane base URL
        node_address: host:port under which this node's API is reachable
        timeout: Request timeout in seconds (ignored when client is given)
        client: Existing client to reuse (tests inject a mock transport)

    Returns:
        Decoded JSON response on success, None on any failure
    """
    url = f"{api_url.rstrip('/')}/register"
    payload = {"address": node_address}

    try:
        if client is not None:
            response = await client.post(url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=timeout) as owned_client:
                response = await owned_client.post(url, json=payload)
        response.raise_for_status()
        body = response.json() if response.content else None
    except httpx.HTTPStatusError as e:
        logger.error(
            "Failed to register node",
            extra={"url": url, "status_code": e.response.status_code, "reason": e.response.reason_phrase},
        )
        return None
    except (httpx.HTTPError, ValueError) as e:
        # ValueError: 2xx answer with a body that is not JSON
        logger.error("Failed to register node", extra={"url": url, "error": str(e)})
        return None

    logger.info("Registered with API server", extra={"url": url, "node_address": node_address, "response": body})
    return body
