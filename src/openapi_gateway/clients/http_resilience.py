import asyncio

import httpx


async def get_with_retry(
    *,
    url: str,
    timeout_seconds: float,
    headers: dict[str, str],
    verify: bool = True,
    max_retries: int = 2,
    backoff_seconds: float = 0.2,
) -> httpx.Response:
    last_error: httpx.TransportError | None = None
    for attempt in range(max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout_seconds, verify=verify) as client:
                return await client.get(url, headers=headers)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            last_error = exc
            if attempt >= max_retries:
                break
            await asyncio.sleep(backoff_seconds * (2**attempt))
    if last_error is None:
        raise httpx.TransportError("upstream communication failure: exhausted retries")
    raise last_error
