"""Webcash server boundary: replace and health check calls."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Protocol, Sequence

import requests
from pydantic import ValidationError

from .errors import WebcashTransportError
from .models import HealthCheckResponse, HealthCheckResult

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://webcash.org"
REPLACE_PATH = "/api/v1/replace"
HEALTH_CHECK_PATH = "/api/v1/health_check"


class WebcashServer(Protocol):
    def replace(
        self,
        webcashes: Sequence[str],
        new_webcashes: Sequence[str],
        legalese: Mapping[str, Any],
    ) -> None:
        ...

    def health_check(self, public_webcashes: Sequence[str]) -> dict[str, HealthCheckResult]:
        ...


@dataclass
class WebcashServerClient:
    """Synchronous HTTP client; one attempt per call, no retries."""

    server_url: str = DEFAULT_SERVER_URL
    timeout_seconds: float = 30.0
    session: requests.Session | None = None

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._session = self.session or requests.Session()

    @property
    def replace_url(self) -> str:
        return self.server_url.rstrip("/") + REPLACE_PATH

    @property
    def health_check_url(self) -> str:
        return self.server_url.rstrip("/") + HEALTH_CHECK_PATH

    def replace(
        self,
        webcashes: Sequence[str],
        new_webcashes: Sequence[str],
        legalese: Mapping[str, Any],
    ) -> None:
        payload = {
            "webcashes": [str(item) for item in webcashes],
            "new_webcashes": [str(item) for item in new_webcashes],
            "legalese": dict(legalese),
        }
        response = self._post(self.replace_url, payload, operation="replace")
        logger.debug("Replace API response status=%s body=%s", response.status_code, _response_text(response))
        if not 200 <= int(response.status_code) < 300:
            raise WebcashTransportError(
                f"Server returned an error: {_response_text(response)}",
                status_code=int(response.status_code),
                body=_response_text(response),
            )

    def health_check(self, public_webcashes: Sequence[str]) -> dict[str, HealthCheckResult]:
        payload = [str(item) for item in public_webcashes]
        response = self._post(self.health_check_url, payload, operation="health_check")
        if int(response.status_code) != 200:
            raise WebcashTransportError(
                f"Server returned an error: {_response_text(response)}",
                status_code=int(response.status_code),
                body=_response_text(response),
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise WebcashTransportError(f"HEALTH_CHECK_INVALID_JSON:{exc}", status_code=200) from exc
        if not isinstance(body, Mapping):
            raise WebcashTransportError("HEALTH_CHECK_INVALID_SHAPE", status_code=200)
        try:
            parsed = HealthCheckResponse(**body)
        except ValidationError as exc:
            raise WebcashTransportError(f"Invalid webcash status in health check response: {exc}", status_code=200) from exc
        return dict(parsed.results)

    def _post(self, url: str, payload: Any, *, operation: str) -> Any:
        try:
            return self._session.post(
                url,
                json=payload,
                timeout=self.timeout_seconds,
                headers={"Content-Type": "application/json"},
            )
        except requests.RequestException as exc:
            logger.error("Could not successfully call the %s API: %s", operation, str(exc)[:256])
            raise WebcashTransportError(f"{operation.upper()}_REQUEST_FAILED:{str(exc)[:256]}") from exc


def _response_text(response: Any) -> str:
    value = getattr(response, "text", "")
    text = str(value or "").strip()
    return text[:256]
