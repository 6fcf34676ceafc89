"""Unit tests for RequestExecutor."""
from unittest.mock import Mock, call

import pytest
import responses
from requests.exceptions import ConnectionError as RequestsConnectionError

from processor.errors import (
    AuthorizationDenied,
    ConfigurationError,
    RateLimitExhausted,
    RequestFailed,
)
from scheduling_api.request_executor import RequestExecutor, parse_retry_after

BASE_URL = 'https://api.example.test/v1'
EVENT_TYPES_URL = f'{BASE_URL}/event-types'


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def executor(sleep):
    return RequestExecutor(BASE_URL, 'secret-key', request_delay=1.5, sleep=sleep)


class TestRequestExecutor:
    """Test cases for RequestExecutor class."""

    @responses.activate
    def test_create_success(self, executor, sleep):
        """Test a successful create followed by the inter-request delay."""
        responses.add(responses.POST, EVENT_TYPES_URL, json={'event_type': {'id': 1}}, status=201)

        body = executor.create({'slug': 'yoga'})

        assert body == {'event_type': {'id': 1}}
        assert responses.calls[0].request.headers['Authorization'] == 'Bearer secret-key'
        sleep.assert_called_once_with(1.5)

    @responses.activate
    def test_get_has_no_inter_request_delay(self, executor, sleep):
        responses.add(responses.GET, EVENT_TYPES_URL, json={'event_types': []}, status=200)

        executor.get('/event-types', params={'limit': 10})

        sleep.assert_not_called()

    @responses.activate
    def test_rate_limit_then_success_honors_retry_after(self, executor, sleep):
        """Test that a 429 with Retry-After is retried once after that delay."""
        responses.add(responses.PUT, f'{EVENT_TYPES_URL}/5', status=429, headers={'Retry-After': '2'})
        responses.add(responses.PUT, f'{EVENT_TYPES_URL}/5', json={'event_type': {'id': 5}}, status=200)

        body = executor.update(5, {'slug': 'yoga'})

        assert body == {'event_type': {'id': 5}}
        assert len(responses.calls) == 2
        assert sleep.call_args_list == [call(2.0), call(1.5)]

    @responses.activate
    def test_rate_limit_exponential_backoff_without_retry_after(self, sleep):
        executor = RequestExecutor(BASE_URL, 'secret-key', request_delay=0, sleep=sleep)
        for _ in range(3):
            responses.add(responses.GET, EVENT_TYPES_URL, status=429)
        responses.add(responses.GET, EVENT_TYPES_URL, json={'event_types': []}, status=200)

        executor.get('/event-types')

        assert sleep.call_args_list == [call(5.0), call(10.0), call(20.0)]

    @responses.activate
    def test_rate_limit_exhausted(self, executor, sleep):
        """Test that persistent 429s surface as RateLimitExhausted."""
        for _ in range(4):
            responses.add(responses.DELETE, f'{EVENT_TYPES_URL}/9', status=429, body='slow down')

        with pytest.raises(RateLimitExhausted) as exc_info:
            executor.delete(9)

        assert exc_info.value.status_code == 429
        assert exc_info.value.response_body == 'slow down'
        assert len(responses.calls) == 4
        # three backoff sleeps plus the inter-request delay
        assert sleep.call_count == 4

    @responses.activate
    def test_authorization_denied_not_retried(self, executor):
        responses.add(responses.POST, EVENT_TYPES_URL, status=403, json={'message': 'Forbidden'})

        with pytest.raises(AuthorizationDenied) as exc_info:
            executor.create({'slug': 'yoga'})

        assert exc_info.value.status_code == 403
        assert 'Forbidden' in exc_info.value.response_body
        assert len(responses.calls) == 1

    @responses.activate
    def test_server_error_not_retried(self, executor):
        """Test that other non-2xx responses fail at once with the body attached."""
        responses.add(responses.POST, EVENT_TYPES_URL, status=500, body='boom')

        with pytest.raises(RequestFailed) as exc_info:
            executor.create({'slug': 'yoga'})

        assert exc_info.value.status_code == 500
        assert exc_info.value.response_body == 'boom'
        assert len(responses.calls) == 1

    @responses.activate
    def test_transport_error(self, executor):
        responses.add(
            responses.GET,
            EVENT_TYPES_URL,
            body=RequestsConnectionError('Connection refused')
        )

        with pytest.raises(RequestFailed, match='Connection refused'):
            executor.get('/event-types')

    @responses.activate
    def test_non_json_success_body(self, executor):
        responses.add(responses.GET, EVENT_TYPES_URL, body='<html></html>', status=200)

        with pytest.raises(RequestFailed, match='not JSON'):
            executor.get('/event-types')

    @responses.activate
    def test_empty_body_decodes_to_none(self, executor):
        responses.add(responses.DELETE, f'{EVENT_TYPES_URL}/3', status=204)

        assert executor.delete(3) is None

    @responses.activate
    def test_patch_update_method(self, sleep):
        executor = RequestExecutor(BASE_URL, 'k', update_method='patch', sleep=sleep)
        responses.add(responses.PATCH, f'{EVENT_TYPES_URL}/4', json={}, status=200)

        executor.update(4, {'slug': 'x'})

        assert responses.calls[0].request.method == 'PATCH'

    @responses.activate
    def test_all_credential_placements(self, sleep):
        """Test bearer, header alias and query parameter placement together."""
        executor = RequestExecutor(
            BASE_URL,
            'secret-key',
            credential_placement=('bearer', 'header', 'query'),
            sleep=sleep
        )
        responses.add(responses.GET, EVENT_TYPES_URL, json={'event_types': []}, status=200)

        executor.get('/event-types', params={'page': 1})

        request = responses.calls[0].request
        assert request.headers['Authorization'] == 'Bearer secret-key'
        assert request.headers['X-Calcom-Api-Key'] == 'secret-key'
        assert 'apiKey=secret-key' in request.url
        assert 'page=1' in request.url

    def test_unknown_credential_placement(self):
        with pytest.raises(ConfigurationError):
            RequestExecutor(BASE_URL, 'k', credential_placement=('cookie',))

    def test_unknown_update_method(self):
        with pytest.raises(ConfigurationError):
            RequestExecutor(BASE_URL, 'k', update_method='POST')

    def test_retry_delay_is_capped(self, sleep):
        executor = RequestExecutor(BASE_URL, 'k', max_retry_delay=30, sleep=sleep)
        response = Mock(headers={'Retry-After': '600'})

        assert executor.retry_delay(response, attempt=0) == 30


class TestParseRetryAfter:
    """Test cases for Retry-After parsing."""

    def test_seconds(self):
        assert parse_retry_after('7') == 7.0

    def test_missing(self):
        assert parse_retry_after(None) is None

    def test_garbage(self):
        assert parse_retry_after('soon') is None

    def test_http_date_in_the_past(self):
        assert parse_retry_after('Wed, 21 Oct 2015 07:28:00 GMT') == 0.0
