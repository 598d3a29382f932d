"""
Centralized error classification for retry and halt decisions.

Maps any raised error (typed PipelineError, requests/azure-core exceptions,
or plain exceptions with a descriptive message) onto an ErrorClassification
that the retry executor and the export orchestrator both consult. The
fatal/transient distinction decided here must survive unchanged to the
top-level export result.

Unknown errors are classified as retryable. Message patterns only mark an
error fatal on specific credential or sink terms; a stray number or common
word in a message never does.
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

from core.errors.exceptions import (
    AuthError,
    ConfigurationError,
    NetworkError,
    PayloadTooLargeError,
    PermanentError,
    PermissionDeniedError,
    PipelineError,
    ThrottlingError,
    TimeoutError,
)

# Error type tags
AUTHENTICATION = "Authentication"
AUTHORIZATION = "Authorization"
CONFIGURATION = "Configuration"
RATE_LIMIT = "RateLimit"
SERVER_ERROR = "ServerError"
NETWORK = "Network"
PAYLOAD_TOO_LARGE = "PayloadTooLarge"
CLIENT_ERROR = "ClientError"
UNKNOWN = "Unknown"

# Substrings of exception type names or messages for connection-level failures
NETWORK_ERROR_MARKERS = frozenset(
    {
        "connectionerror",
        "connection refused",
        "connection reset",
        "connection aborted",
        "remote end closed",
        "no route to host",
        "network unreachable",
        "name resolution",
        "getaddrinfo",
        "dns",
        "socket",
        "broken pipe",
        "ssl",
        "timeout",
        "timed out",
        "temporarily unavailable",
    }
)

# Credential failures: Entra STS error codes and explicit token rejections.
_AUTH_PATTERN = re.compile(
    r"\baadsts\d{5,7}\b|\bunauthori[sz]ed\b|\binvalid[ _]token\b|\btoken (?:has )?expired\b",
    re.IGNORECASE,
)

# Event Hubs / Service Bus terms. An error naming the sink without a network
# symptom means the sink itself is misconfigured.
_SINK_PATTERN = re.compile(
    r"servicebus\.windows\.net|\bservice ?bus\b|\bevent ?hubs?\b|\bmessagingentity(?:notfound|disabled)\b",
    re.IGNORECASE,
)

# "status code 503", "HTTP 429", "status: 404"
_STATUS_CONTEXT_PATTERN = re.compile(
    r"(?:status(?:[\s_]*code)?|http)\D{0,3}([1-5]\d\d)\b", re.IGNORECASE
)
# Bare codes the classifier cares about, e.g. "(403) Forbidden"
_BARE_STATUS_PATTERN = re.compile(r"\b(401|403|404|408|413|429|5\d\d)\b")


@dataclass(frozen=True)
class ErrorClassification:
    """
    Classification of a single error occurrence. Derived on the fly, never persisted.

    Attributes:
        error_type: Tag such as "Authentication", "RateLimit", "Network"
        http_status_code: Status code extracted from the error, if any
        is_fatal: Halt the current unit of work immediately
        is_retryable: Eligible for another attempt with backoff
    """

    error_type: str
    http_status_code: Optional[int]
    is_fatal: bool
    is_retryable: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def extract_status_code(error: BaseException) -> Optional[int]:
    """
    Extract an HTTP status code from an error.

    Typed inspection first (PipelineError.status_code, azure-core
    HttpResponseError.status_code, requests HTTPError.response), then a
    message pattern match.
    """
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status

    response = getattr(error, "response", None)
    if response is not None:
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status

    message = str(error)
    match = _STATUS_CONTEXT_PATTERN.search(message) or _BARE_STATUS_PATTERN.search(message)
    if match:
        return int(match.group(1))
    return None


def _classify_status(status: int) -> ErrorClassification:
    if status == 401:
        return ErrorClassification(AUTHENTICATION, status, is_fatal=True, is_retryable=False)
    if status == 403:
        return ErrorClassification(AUTHORIZATION, status, is_fatal=True, is_retryable=False)
    if status == 404:
        return ErrorClassification(CONFIGURATION, status, is_fatal=True, is_retryable=False)
    if status == 413:
        return ErrorClassification(PAYLOAD_TOO_LARGE, status, is_fatal=False, is_retryable=False)
    if status == 429:
        return ErrorClassification(RATE_LIMIT, status, is_fatal=False, is_retryable=True)
    if status == 408:
        return ErrorClassification(NETWORK, status, is_fatal=False, is_retryable=True)
    if status >= 500:
        return ErrorClassification(SERVER_ERROR, status, is_fatal=False, is_retryable=True)
    if status >= 400:
        return ErrorClassification(CLIENT_ERROR, status, is_fatal=False, is_retryable=False)
    return ErrorClassification(UNKNOWN, status, is_fatal=False, is_retryable=True)


def _classify_typed(error: PipelineError) -> Optional[ErrorClassification]:
    if isinstance(error, PermissionDeniedError):
        return ErrorClassification(AUTHORIZATION, None, is_fatal=True, is_retryable=False)
    if isinstance(error, AuthError):
        return ErrorClassification(AUTHENTICATION, None, is_fatal=True, is_retryable=False)
    if isinstance(error, ConfigurationError):
        return ErrorClassification(CONFIGURATION, None, is_fatal=True, is_retryable=False)
    if isinstance(error, PayloadTooLargeError):
        return ErrorClassification(PAYLOAD_TOO_LARGE, 413, is_fatal=False, is_retryable=False)
    if isinstance(error, ThrottlingError):
        return ErrorClassification(RATE_LIMIT, None, is_fatal=False, is_retryable=True)
    if isinstance(error, (NetworkError, TimeoutError)):
        return ErrorClassification(NETWORK, None, is_fatal=False, is_retryable=True)
    if isinstance(error, PermanentError):
        return ErrorClassification(CLIENT_ERROR, None, is_fatal=False, is_retryable=False)
    return None


def _is_network_error(error: BaseException) -> bool:
    # builtins.ConnectionError / TimeoutError / OSError socket failures and
    # requests' ConnectionError / Timeout (subclasses of IOError)
    if isinstance(error, (ConnectionError, OSError)) and not isinstance(
        error, (FileNotFoundError, PermissionError)
    ):
        return True

    exc_type = type(error).__name__.lower()
    exc_str = str(error).lower()
    return any(m in exc_type or m in exc_str for m in NETWORK_ERROR_MARKERS)


def classify_error(error: BaseException) -> ErrorClassification:
    """
    Map a raw error into an ErrorClassification.

    Order:
        1. HTTP status (typed inspection, then message pattern)
        2. Typed PipelineError subclasses
        3. Network/timeout/socket patterns → retryable
        4. Credential failures (AADSTS codes, ClientAuthenticationError) → fatal
        5. Sink keyword patterns → fatal configuration error
        6. Anything else → retryable (conservative default)
    """
    status = extract_status_code(error)
    if status is not None and status >= 400:
        return _classify_status(status)

    if isinstance(error, PipelineError):
        typed = _classify_typed(error)
        if typed is not None:
            return typed

    if _is_network_error(error):
        return ErrorClassification(NETWORK, None, is_fatal=False, is_retryable=True)

    exc_type = type(error).__name__.lower()
    message = str(error)

    if exc_type == "clientauthenticationerror" or _AUTH_PATTERN.search(message):
        return ErrorClassification(AUTHENTICATION, None, is_fatal=True, is_retryable=False)

    if _SINK_PATTERN.search(message):
        return ErrorClassification(CONFIGURATION, None, is_fatal=True, is_retryable=False)

    return ErrorClassification(UNKNOWN, None, is_fatal=False, is_retryable=True)


REMEDIATION = {
    AUTHENTICATION: (
        "Verify the workload identity: the managed identity client id (AZURE_CLIENT_ID) "
        "or service principal credentials must exist in the target tenant."
    ),
    AUTHORIZATION: (
        "Grant the identity the required role (Reader on the subscription, "
        "Azure Event Hubs Data Sender on the event hub, Directory.Read.All / "
        "GroupMember.Read.All for Microsoft Graph). RBAC propagation may take up to 24h."
    ),
    CONFIGURATION: (
        "Check the configured identifiers: subscription/tenant id, Event Hubs "
        "namespace and hub name must exist and be spelled correctly."
    ),
    PAYLOAD_TOO_LARGE: (
        "Reduce the target batch size (batching.target_bytes / hard_cap_bytes) "
        "to fit the event hub tier's maximum message size."
    ),
    RATE_LIMIT: "Upstream throttling persisted through all retries; reduce run frequency or scope.",
    SERVER_ERROR: "Remote service kept failing; retry the export later.",
    NETWORK: "Check outbound connectivity (DNS, firewall, private endpoints) from the job host.",
}


def remediation_for(classification: ErrorClassification) -> Optional[str]:
    """Return operator guidance for a classification, if any is known."""
    return REMEDIATION.get(classification.error_type)


__all__ = [
    "ErrorClassification",
    "classify_error",
    "extract_status_code",
    "remediation_for",
    "AUTHENTICATION",
    "AUTHORIZATION",
    "CONFIGURATION",
    "RATE_LIMIT",
    "SERVER_ERROR",
    "NETWORK",
    "PAYLOAD_TOO_LARGE",
    "CLIENT_ERROR",
    "UNKNOWN",
]
