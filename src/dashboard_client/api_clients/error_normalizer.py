"""Error Normalizer for the Dashboard API client.

Converts any raw failure (connection failure, timeout, malformed response,
HTTP status) into a single immutable EnhancedError shape. The UI layer only
ever sees this shape, never raw exceptions or response objects.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .request_params import utc_timestamp

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Closed taxonomy of non-HTTP error codes.

    HTTP failures use "HTTP_<status>" codes instead.
    """

    NETWORK_ERROR = "NETWORK_ERROR"
    NO_RESPONSE = "NO_RESPONSE"
    TIMEOUT = "TIMEOUT"
    CLIENT_ERROR = "CLIENT_ERROR"


TRANSIENT_ERROR_CODES = frozenset(
    {
        ErrorKind.NETWORK_ERROR.value,
        ErrorKind.NO_RESPONSE.value,
        ErrorKind.TIMEOUT.value,
    }
)


def http_error_code(status_code: int) -> str:
    return f"HTTP_{status_code}"


@dataclass(frozen=True)
class EnhancedError:
    """Normalized, immutable description of one failed request or operation."""

    message: str
    error_code: str
    original_error: Any = field(default=None, repr=False, compare=False)
    timestamp: str = field(default_factory=utc_timestamp)
    status_code: Optional[int] = None
    request_url: Optional[str] = None
    request_method: Optional[str] = None

    @property
    def is_network_error(self) -> bool:
        return self.error_code in TRANSIENT_ERROR_CODES

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500

    @property
    def is_retryable(self) -> bool:
        """Whether the failure is transient and safe to retry automatically."""
        return self.is_network_error or self.is_server_error

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view for display, without the original error object."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
            "request_url": self.request_url,
            "request_method": self.request_method,
        }


class DashboardAPIError(Exception):
    """Exception raised by the transport pipeline; carries one EnhancedError."""

    def __init__(self, error: EnhancedError):
        super().__init__(error.message)
        self.error = error

    @property
    def error_code(self) -> str:
        return self.error.error_code

    @property
    def status_code(self) -> Optional[int]:
        return self.error.status_code


def _request_context(raw: Any) -> Tuple[Optional[str], Optional[str]]:
    """Best-effort extraction of (url, method) from an httpx object."""
    try:
        request = raw.request
    except (AttributeError, RuntimeError):
        return None, None
    if not isinstance(request, httpx.Request):
        return None, None
    return str(request.url), request.method


def _safe_str(raw: Any) -> str:
    try:
        return str(raw)
    except Exception:
        return ""


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return None
    except httpx.ResponseNotRead:
        return None


def _status_line(response: httpx.Response) -> str:
    reason = response.reason_phrase or ""
    if reason:
        return f"{response.status_code} {reason}"
    return f"HTTP {response.status_code}"


def _field_errors(body: Dict[str, Any]) -> List[str]:
    """Extract "field: message" strings from a structured error body.

    Supports {"detail": {"errors": [{"field", "message", "type"}]}} and the
    FastAPI validation shape {"detail": [{"loc", "msg", "type"}]}.
    """
    detail = body.get("detail")
    entries: List[str] = []

    if isinstance(detail, dict):
        errors = detail.get("errors") or []
        for error in errors:
            if isinstance(error, dict):
                entries.append(f"{error.get('field')}: {error.get('message')}")
    elif isinstance(detail, list):
        for error in detail:
            if not isinstance(error, dict):
                continue
            location = [str(part) for part in error.get("loc") or []]
            if len(location) > 1 and location[0] in ("body", "query", "path"):
                location = location[1:]
            entries.append(f"{'.'.join(location)}: {error.get('msg')}")

    return entries


def _http_message(response: httpx.Response) -> str:
    body = _response_body(response)
    if not isinstance(body, dict):
        return _status_line(response)

    message = body.get("message")
    detail = body.get("detail")
    if isinstance(message, str) and message:
        base = message
    elif isinstance(detail, str) and detail:
        base = detail
    else:
        base = _status_line(response)

    field_errors = _field_errors(body)
    if field_errors:
        return f"{base}: {', '.join(field_errors)}"
    return base


def _from_response(
    response: httpx.Response,
    raw: Any,
    url: Optional[str],
    method: Optional[str],
) -> EnhancedError:
    status_code = response.status_code
    return EnhancedError(
        message=_http_message(response),
        error_code=http_error_code(status_code),
        original_error=raw,
        status_code=status_code,
        request_url=url,
        request_method=method,
    )


def _classify(raw: Any, url: Optional[str], method: Optional[str]) -> EnhancedError:
    if isinstance(raw, EnhancedError):
        return raw
    if isinstance(raw, DashboardAPIError):
        return raw.error

    context_url, context_method = _request_context(raw)
    url = url or context_url
    method = method or context_method

    def _build(kind: ErrorKind, message: str) -> EnhancedError:
        return EnhancedError(
            message=message,
            error_code=kind.value,
            original_error=raw,
            request_url=url,
            request_method=method,
        )

    if isinstance(raw, httpx.HTTPStatusError):
        return _from_response(raw.response, raw, url, method)

    if isinstance(raw, httpx.Response):
        if raw.status_code >= 400:
            return _from_response(raw, raw, url, method)
        return _build(
            ErrorKind.CLIENT_ERROR,
            f"Unexpected response treated as failure: {_status_line(raw)}",
        )

    if isinstance(raw, httpx.ConnectTimeout):
        return _build(
            ErrorKind.TIMEOUT,
            "Connection timed out. Check your network connection or try again later.",
        )
    if isinstance(raw, (httpx.TimeoutException, TimeoutError)):
        return _build(
            ErrorKind.TIMEOUT,
            "Request timed out. Check your network connection or try again later.",
        )

    if isinstance(raw, (httpx.ReadError, httpx.RemoteProtocolError)):
        return _build(ErrorKind.NO_RESPONSE, "No response received from server")

    if isinstance(raw, (httpx.NetworkError, httpx.ProxyError, ConnectionError)):
        detail = _safe_str(raw)
        message = f"Network error: {detail}" if detail else "Network error"
        return _build(ErrorKind.NETWORK_ERROR, message)

    if isinstance(raw, (json.JSONDecodeError, httpx.DecodingError)):
        return _build(ErrorKind.CLIENT_ERROR, f"Malformed response: {_safe_str(raw)}")

    return _build(ErrorKind.CLIENT_ERROR, _safe_str(raw) or "Unknown error")


def normalize_error(
    raw: Any, url: Optional[str] = None, method: Optional[str] = None
) -> EnhancedError:
    """Convert any raw failure into an EnhancedError.

    Never raises. An EnhancedError (or DashboardAPIError) passed in is
    returned as the same object so that one failure has one error.

    Args:
        raw: Exception, httpx.Response, or previously normalized error
        url: Request URL, when not derivable from raw
        method: Request method, when not derivable from raw

    Returns:
        EnhancedError describing the failure
    """
    try:
        error = _classify(raw, url, method)
    except Exception as e:
        logger.debug(f"Error classification failed for {type(raw).__name__}: {e}")
        error = EnhancedError(
            message=_safe_str(raw) or "Unknown error",
            error_code=ErrorKind.CLIENT_ERROR.value,
            original_error=raw,
            request_url=url,
            request_method=method,
        )

    logger.debug(
        f"Normalized {type(raw).__name__} to {error.error_code}: {error.message}"
    )
    return error
