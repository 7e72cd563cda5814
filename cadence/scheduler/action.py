"""External action invoker — runs a scheduled prompt through the analysis API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from cadence.config import settings
from cadence.errors import ActionFailure

logger = logging.getLogger(__name__)

USER_AGENT = "Cadence-Scheduler/1.0"


@dataclass
class ActionResult:
    """Outcome of one action invocation."""

    data: Any = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@runtime_checkable
class ActionInvoker(Protocol):
    async def invoke(self, prompt: str) -> ActionResult:
        """Run *prompt*. Must not raise for ordinary failures."""
        ...


class HttpActionInvoker:
    """POSTs the prompt to the analysis endpoint and returns its JSON body.

    Non-2xx responses, transport errors, timeouts and non-JSON bodies all
    come back as a failed ``ActionResult``. There is no retry; the entry's
    next natural run is the retry.
    """

    def __init__(self, endpoint: str | None = None, timeout: float | None = None) -> None:
        self._endpoint = endpoint or settings.action_endpoint_url
        self._timeout = timeout or settings.action_timeout_seconds

    async def invoke(self, prompt: str) -> ActionResult:
        payload = {
            "prompt": prompt,
            "analysisType": "scheduled_analysis",
            "options": {
                "includeKeyPoints": True,
                "includeSummary": True,
                "maxLength": 4000,
            },
        }
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._endpoint, json=payload, headers=headers)
            return ActionResult(data=_parse_response(resp))
        except httpx.TimeoutException:
            logger.warning("Action call timed out after %.0fs", self._timeout)
            return ActionResult(error=f"API request timed out after {self._timeout:.0f}s")
        except httpx.HTTPError as exc:
            logger.exception("Action call failed")
            return ActionResult(error=f"API request failed: {exc}")
        except ActionFailure as exc:
            logger.warning("Action call rejected: %s", exc.message)
            return ActionResult(error=exc.message)


def _parse_response(resp: httpx.Response) -> Any:
    """Return the JSON body of a 2xx response. Raises ActionFailure otherwise."""
    if resp.status_code < 200 or resp.status_code >= 300:
        raise ActionFailure(f"API request failed: {resp.status_code} {resp.text[:200]}")
    try:
        return resp.json()
    except ValueError as exc:
        raise ActionFailure("API returned a malformed response") from exc
