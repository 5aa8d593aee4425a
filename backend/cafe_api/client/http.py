"""Shared pieces of the API clients."""

from typing import Any, Optional

import httpx

DEFAULT_TIMEOUT = 10.0


class ApiError(Exception):
    """A non-2xx answer from the cafe API."""

    def __init__(self, status_code: int, kind: Optional[str], detail: str):
        self.status_code = status_code
        self.kind = kind
        self.detail = detail
        super().__init__(f"{status_code} {kind or 'error'}: {detail}")

    @property
    def is_stale_state(self) -> bool:
        return self.kind == "stale_state"


def raise_for_api_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    kind = None
    detail: Any = response.reason_phrase
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        kind = body.get("error")
        detail = body.get("detail", detail)
    raise ApiError(response.status_code, kind, str(detail))


def json_or_raise(response: httpx.Response) -> Any:
    raise_for_api_error(response)
    if response.status_code == 204 or not response.content:
        return None
    return response.json()
