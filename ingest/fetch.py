from __future__ import annotations

import httpx

from ingest.errors import SourceTimeout, SourceUnavailable


def _timeout(read_seconds: float) -> httpx.Timeout:
    return httpx.Timeout(connect=5.0, read=read_seconds, write=5.0, pool=5.0)


async def fetch(
    client: httpx.AsyncClient,
    *,
    source_id: str,
    url: str,
    user_agent: str,
    timeout_seconds: float,
    params: dict[str, str | int] | None = None,
    extra_headers: dict[str, str] | None = None,
) -> httpx.Response:
    headers = {
        "User-Agent": user_agent,
        "Accept": "application/json, application/geo+json, text/html, application/xml, */*",
    }
    if extra_headers:
        headers.update(extra_headers)

    try:
        response = await client.get(
            url, params=params, headers=headers, timeout=_timeout(timeout_seconds)
        )
    except httpx.TimeoutException as e:
        raise SourceTimeout(source_id, "timeout") from e
    except httpx.RequestError as e:
        raise SourceUnavailable(source_id, f"request_error:{e.__class__.__name__}") from e

    if not response.is_success:
        raise SourceUnavailable(source_id, f"http_{response.status_code}")
    return response


async def post_json(
    client: httpx.AsyncClient,
    *,
    source_id: str,
    url: str,
    user_agent: str,
    timeout_seconds: float,
    payload: dict,
) -> httpx.Response:
    try:
        response = await client.post(
            url,
            json=payload,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            timeout=_timeout(timeout_seconds),
        )
    except httpx.TimeoutException as e:
        raise SourceTimeout(source_id, "timeout") from e
    except httpx.RequestError as e:
        raise SourceUnavailable(source_id, f"request_error:{e.__class__.__name__}") from e

    if not response.is_success:
        raise SourceUnavailable(source_id, f"http_{response.status_code}")
    return response
