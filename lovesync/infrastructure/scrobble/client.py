"""HTTP client for the scrobble service REST API."""

import json
import logging
from typing import Any, Callable, Dict, Optional, TypeVar

import requests

from lovesync.domain.entities import ApiError, ApiResult
from lovesync.domain.errors import OperationCancelled, TransportFailure
from lovesync.domain.ports import CancellationSignal
from lovesync.infrastructure.scrobble.messages import ApiRequest
from lovesync.infrastructure.scrobble.signing import append_signature, to_form_body, to_query_string

logger = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_HOST = "ws.audioscrobbler.com"
API_VERSION = "2.0"


class ScrobbleApiClient:
    """Issues signed GET/POST calls and classifies the responses.

    Service-level errors and malformed bodies are returned as ``ApiResult``
    values. Transport errors raise ``TransportFailure`` and are left to the
    caller.
    """

    def __init__(self,
                 api_secret: str,
                 host: str = DEFAULT_HOST,
                 version: str = API_VERSION,
                 timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            api_secret: Shared secret used to sign requests
            host: API host name
            version: API version path segment
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.api_secret = api_secret
        self.host = host
        self.version = version
        self.timeout = timeout
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "ScrobbleApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def build_get_url(self, params: Dict[str, str], secure: bool) -> str:
        return f"{self.build_post_url(secure)}&{to_query_string(params)}"

    def build_post_url(self, secure: bool) -> str:
        scheme = "https" if secure else "http"
        return f"{scheme}://{self.host}/{self.version}/?format=json"

    def get(self,
            request: ApiRequest,
            parse: Callable[[Dict[str, Any]], R],
            cancel_event: Optional[CancellationSignal] = None) -> ApiResult[R]:
        """Send a signed GET request.

        Args:
            request: Request shape to send
            parse: Maps the decoded JSON object to the expected response shape
            cancel_event: Checked before the call is initiated

        Returns:
            ApiResult with the parsed payload, a service error or a malformed marker

        Raises:
            TransportFailure: If the HTTP exchange itself fails
            OperationCancelled: If cancellation was requested before the call
        """
        logger.debug(f"GET {request.method}")
        self._check_cancelled(cancel_event, request)
        params = append_signature(request.to_params(), self.api_secret)
        url = self.build_get_url(params, request.secure)

        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportFailure(f"GET {request.method} failed: {e}") from e

        return self._handle_response(request, response, parse)

    def post(self,
             request: ApiRequest,
             parse: Callable[[Dict[str, Any]], R],
             cancel_event: Optional[CancellationSignal] = None) -> ApiResult[R]:
        """Send a signed POST request with the parameters as a form body.

        Same result and error contract as ``get``.
        """
        logger.debug(f"POST {request.method}")
        self._check_cancelled(cancel_event, request)
        params = append_signature(request.to_params(), self.api_secret)

        try:
            response = self._session.post(
                self.build_post_url(request.secure),
                data=to_form_body(params).encode("utf-8"),
                headers={"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportFailure(f"POST {request.method} failed: {e}") from e

        return self._handle_response(request, response, parse)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[CancellationSignal], request: ApiRequest) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled(f"Cancelled before {request.method}")

    def _handle_response(self,
                         request: ApiRequest,
                         response: requests.Response,
                         parse: Callable[[Dict[str, Any]], R]) -> ApiResult[R]:
        body = response.text
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Response body: {body}")

        try:
            data = json.loads(body)
        except ValueError as e:
            logger.debug(f"Could not decode {request.method} response (HTTP {response.status_code}): {e}")
            return ApiResult.malformed(f"invalid JSON: {e}")

        if not isinstance(data, dict):
            logger.debug(f"Unexpected {request.method} response type: {type(data).__name__}")
            return ApiResult.malformed(f"expected a JSON object, got {type(data).__name__}")

        if "error" in data:
            try:
                code = int(data["error"])
            except (TypeError, ValueError):
                code = -1
            error = ApiError(code=code, message=str(data.get("message", "")))
            logger.error(f"{request.method} failed with service error {error.code}: {error.message}")
            return ApiResult.service_error(error)

        try:
            payload = parse(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Unexpected {request.method} response shape: {e!r}")
            return ApiResult.malformed(f"unexpected shape: {e!r}")

        return ApiResult.ok(payload)
