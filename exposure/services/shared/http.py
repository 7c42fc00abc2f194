from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, TypeVar
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from exposure.config import fetch_max_workers, fetch_timeout_seconds

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING: Any = object()


class FetchError(RuntimeError):
    """An upstream data source was unreachable or answered with a non-success status."""


class HttpStatusError(FetchError):
    def __init__(self, url: str, status: int, reason: str = "") -> None:
        super().__init__(f"{url} responded {status} {reason}".strip())
        self.url = url
        self.status = status


def _request_json(req: Request, timeout_seconds: float | None, not_found_default: Any) -> Any:
    timeout = fetch_timeout_seconds() if timeout_seconds is None else timeout_seconds
    try:
        with urlopen(req, timeout=timeout) as resp:
            raw = resp.read()
            return json.loads(raw.decode("utf-8"))
    except HTTPError as exc:
        if exc.code == 404 and not_found_default is not _MISSING:
            return not_found_default
        raise HttpStatusError(req.full_url, int(exc.code), str(exc.reason)) from exc
    except (URLError, TimeoutError) as exc:
        raise FetchError(f"{req.full_url} unreachable: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise FetchError(f"{req.full_url} returned invalid JSON: {exc}") from exc


def fetch_json(
    url: str,
    *,
    headers: dict[str, str] | None = None,
    timeout_seconds: float | None = None,
    not_found_default: Any = _MISSING,
) -> Any:
    """GET a JSON document; a 404 yields ``not_found_default`` when one is given."""
    req = Request(url, method="GET", headers={"Accept": "application/json", **(headers or {})})
    return _request_json(req, timeout_seconds, not_found_default)


def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    headers: dict[str, str] | None = None,
    timeout_seconds: float | None = None,
) -> Any:
    body = json.dumps(payload).encode("utf-8")
    req = Request(
        url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json", "Accept": "application/json", **(headers or {})},
    )
    return _request_json(req, timeout_seconds, _MISSING)


def graphql_request(url: str, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
    response = post_json(url, {"query": query, "variables": variables or {}})
    if not isinstance(response, dict):
        raise FetchError(f"{url} returned a non-object GraphQL response")
    errors = response.get("errors")
    if errors:
        first = errors[0].get("message") if isinstance(errors[0], dict) else errors[0]
        raise FetchError(f"{url} GraphQL error: {first}")
    data = response.get("data")
    if not isinstance(data, dict):
        raise FetchError(f"{url} GraphQL response has no data")
    return data


def settle_all(
    jobs: dict[str, Callable[[], T]],
    max_workers: int | None = None,
) -> tuple[dict[str, T], dict[str, Exception]]:
    """Run independent jobs concurrently; one failure never cancels the others."""
    if not jobs:
        return {}, {}
    workers = min(max_workers or fetch_max_workers(), len(jobs))
    results: dict[str, T] = {}
    failures: dict[str, Exception] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        future_map = {pool.submit(job): key for key, job in jobs.items()}
        for future in as_completed(future_map):
            key = future_map[future]
            try:
                results[key] = future.result()
            except Exception as exc:
                logger.warning("Fetch job %s failed: %s", key, exc)
                failures[key] = exc
    return results, failures
