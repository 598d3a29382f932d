"""Tests for classify_error, extract_status_code and remediation text."""

import pytest
import requests

from core.errors.classifiers import (
    AUTHENTICATION,
    AUTHORIZATION,
    CLIENT_ERROR,
    CONFIGURATION,
    NETWORK,
    PAYLOAD_TOO_LARGE,
    RATE_LIMIT,
    SERVER_ERROR,
    UNKNOWN,
    classify_error,
    extract_status_code,
    remediation_for,
)
from core.errors.exceptions import (
    AuthError,
    ConfigurationError,
    NetworkError,
    PayloadTooLargeError,
    PermissionDeniedError,
    ThrottlingError,
)


class TestExtractStatusCode:
    def test_from_typed_attribute(self):
        assert extract_status_code(PermissionDeniedError("denied", status_code=403)) == 403

    def test_from_response_attribute(self):
        response = requests.Response()
        response.status_code = 429
        error = requests.HTTPError("too many", response=response)
        assert extract_status_code(error) == 429

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Request failed with status code 503", 503),
            ("HTTP 429 Too Many Requests", 429),
            ("(403) Forbidden", 403),
            ("status: 404 not found", 404),
            ("nothing numeric here", None),
        ],
    )
    def test_from_message(self, message, expected):
        assert extract_status_code(Exception(message)) == expected


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "status,error_type,fatal,retryable",
        [
            (401, AUTHENTICATION, True, False),
            (403, AUTHORIZATION, True, False),
            (404, CONFIGURATION, True, False),
            (413, PAYLOAD_TOO_LARGE, False, False),
            (429, RATE_LIMIT, False, True),
            (500, SERVER_ERROR, False, True),
            (503, SERVER_ERROR, False, True),
            (400, CLIENT_ERROR, False, False),
        ],
    )
    def test_status_mapping(self, status, error_type, fatal, retryable):
        result = classify_error(Exception(f"HTTP {status}"))
        assert result.error_type == error_type
        assert result.http_status_code == status
        assert result.is_fatal is fatal
        assert result.is_retryable is retryable


class TestClassifyTyped:
    def test_auth_error_fatal(self):
        result = classify_error(AuthError("bad secret"))
        assert result.error_type == AUTHENTICATION
        assert result.is_fatal

    def test_permission_denied_fatal(self):
        assert classify_error(PermissionDeniedError("no role")).error_type == AUTHORIZATION

    def test_configuration_error_fatal(self):
        result = classify_error(ConfigurationError("bad hub name"))
        assert result.error_type == CONFIGURATION
        assert result.is_fatal

    def test_payload_too_large_not_fatal(self):
        result = classify_error(PayloadTooLargeError("too big", record_ids=["a"]))
        assert result.error_type == PAYLOAD_TOO_LARGE
        assert not result.is_fatal
        assert not result.is_retryable

    def test_throttling_retryable(self):
        assert classify_error(ThrottlingError("slow")).is_retryable

    def test_network_error_retryable(self):
        assert classify_error(NetworkError("reset")).error_type == NETWORK


class TestClassifyPatterns:
    def test_connection_error_retryable(self):
        result = classify_error(ConnectionError("Connection reset by peer"))
        assert result.error_type == NETWORK
        assert result.is_retryable

    def test_requests_timeout_retryable(self):
        assert classify_error(requests.Timeout("read timed out")).is_retryable

    def test_aadsts_fatal(self):
        result = classify_error(RuntimeError("AADSTS700016: application not found"))
        assert result.error_type == AUTHENTICATION
        assert result.is_fatal

    def test_sink_keyword_fatal(self):
        result = classify_error(RuntimeError("MessagingEntityNotFound: hub does not exist"))
        assert result.error_type == CONFIGURATION
        assert result.is_fatal

    def test_sink_keyword_with_network_symptom_retryable(self):
        result = classify_error(RuntimeError("eventhub connection timed out"))
        assert result.error_type == NETWORK
        assert not result.is_fatal

    def test_digits_inside_guid_not_authentication(self):
        result = classify_error(
            ValueError("Unexpected response body for resource 7c4019ab-aaaa-4bbb-8ccc-0123456789ab")
        )
        assert result.error_type == UNKNOWN
        assert not result.is_fatal
        assert result.is_retryable

    def test_python_error_mentioning_namespace_not_configuration(self):
        result = classify_error(AttributeError("'types.SimpleNamespace' object has no attribute 'get'"))
        assert result.error_type == UNKNOWN
        assert not result.is_fatal

    def test_eventhub_identifier_in_python_error_not_configuration(self):
        result = classify_error(KeyError("eventhub_name"))
        assert result.error_type == UNKNOWN

    @pytest.mark.parametrize(
        "message",
        [
            "Put token failed for myns.servicebus.windows.net/inventory",
            "The messaging entity was not found: MessagingEntityNotFound",
            "Event Hub 'inventory' is disabled",
        ],
    )
    def test_sink_specific_terms_fatal(self, message):
        result = classify_error(RuntimeError(message))
        assert result.error_type == CONFIGURATION
        assert result.is_fatal

    def test_unauthorized_word_is_authentication(self):
        assert classify_error(RuntimeError("Unauthorized: token rejected")).error_type == AUTHENTICATION

    def test_unknown_defaults_to_retryable(self):
        result = classify_error(RuntimeError("something unexpected"))
        assert result.error_type == UNKNOWN
        assert result.is_retryable
        assert not result.is_fatal


class TestRemediation:
    def test_authorization_mentions_propagation_delay(self):
        text = remediation_for(classify_error(Exception("HTTP 403")))
        assert "24h" in text

    def test_unknown_has_no_remediation(self):
        assert remediation_for(classify_error(RuntimeError("odd"))) is None

    def test_to_dict(self):
        data = classify_error(Exception("HTTP 429")).to_dict()
        assert data == {
            "error_type": RATE_LIMIT,
            "http_status_code": 429,
            "is_fatal": False,
            "is_retryable": True,
        }
