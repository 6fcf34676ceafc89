"""Request executor for the scheduling API with rate-limit handling."""
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Optional, Sequence

import requests

from processor.errors import (
    AuthorizationDenied,
    ConfigurationError,
    RateLimitExhausted,
    RequestFailed,
)
from processor.models import RemoteId

logger = logging.getLogger(__name__)

CREDENTIAL_PLACEMENTS = ('bearer', 'header', 'query')
REDACTED = '***'


class RequestExecutor:
    """
    Executor for event type requests.

    Every call is sent and awaited before the next one starts. HTTP 429 is
    retried with backoff, HTTP 403 and every other failure surface at once
    as per-record errors.
    """

    EVENT_TYPES_PATH = '/event-types'

    def __init__(
        self,
        base_url: str,
        api_key: str,
        credential_placement: Sequence[str] = ('bearer',),
        api_key_header: str = 'X-Calcom-Api-Key',
        api_key_param: str = 'apiKey',
        update_method: str = 'PUT',
        timeout: int = 30,
        max_retries: int = 3,
        retry_base_delay: float = 5.0,
        max_retry_delay: float = 60.0,
        request_delay: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the request executor.

        Args:
            base_url: API root, e.g. https://api.cal.com/v1
            api_key: Bearer credential
            credential_placement: Any of 'bearer', 'header', 'query'
            api_key_header: Header alias used by 'header' placement
            api_key_param: Query parameter used by 'query' placement
            update_method: PUT or PATCH
            timeout: Per-request timeout in seconds
            max_retries: Retries allowed after HTTP 429
            retry_base_delay: Backoff base when no Retry-After is sent
            max_retry_delay: Ceiling on a single backoff sleep
            request_delay: Fixed pause after every executed mutation
            session: Optional requests session
            sleep: Sleep function, replaceable in tests
        """
        unknown = set(credential_placement) - set(CREDENTIAL_PLACEMENTS)
        if unknown or not credential_placement:
            raise ConfigurationError(
                f"Unsupported credential placement: {sorted(unknown) or 'none'}"
            )
        if update_method.upper() not in ('PUT', 'PATCH'):
            raise ConfigurationError(f"Unsupported update method: {update_method}")

        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.credential_placement = tuple(credential_placement)
        self.api_key_header = api_key_header
        self.api_key_param = api_key_param
        self.update_method = update_method.upper()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.max_retry_delay = max_retry_delay
        self.request_delay = request_delay
        self.session = session or requests.Session()
        self._sleep = sleep

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.execute('GET', path, params=params)

    def create(self, payload: Dict[str, Any]) -> Any:
        return self.execute('POST', self.EVENT_TYPES_PATH, json_body=payload, mutation=True)

    def update(self, event_type_id: RemoteId, payload: Dict[str, Any]) -> Any:
        return self.execute(
            self.update_method,
            f"{self.EVENT_TYPES_PATH}/{event_type_id}",
            json_body=payload,
            mutation=True
        )

    def delete(self, event_type_id: RemoteId) -> Any:
        return self.execute(
            'DELETE',
            f"{self.EVENT_TYPES_PATH}/{event_type_id}",
            mutation=True
        )

    def execute(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        mutation: bool = False
    ) -> Any:
        """
        Send one request, retrying on HTTP 429.

        Args:
            method: HTTP method
            path: Path below the API root
            params: Query parameters
            json_body: JSON request body
            mutation: Apply the inter-request delay after the call

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            RateLimitExhausted: If HTTP 429 persists past max_retries
            AuthorizationDenied: On HTTP 403
            RequestFailed: On any other failure
        """
        try:
            response = self._send_with_retry(method, path, params, json_body)
        finally:
            if mutation and self.request_delay > 0:
                self._sleep(self.request_delay)

        return self._decode(response)

    def _send_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        json_body: Optional[Dict[str, Any]]
    ) -> requests.Response:
        attempt = 0
        while True:
            response = self._send(method, path, params, json_body)
            if response.status_code != 429:
                break

            if attempt >= self.max_retries:
                logger.error(
                    f"Rate limit persisted after {self.max_retries} retries: {method} {path}",
                    extra={'status_code': 429, 'attempt': attempt}
                )
                raise RateLimitExhausted(
                    f"{method} {path} still rate limited after {self.max_retries} retries",
                    status_code=429,
                    response_body=_body_text(response)
                )

            delay = self.retry_delay(response, attempt)
            attempt += 1
            logger.warning(
                f"Rate limited on {method} {path}; retry {attempt}/{self.max_retries} "
                f"in {delay} seconds",
                extra={'status_code': 429, 'attempt': attempt, 'delay_seconds': delay}
            )
            self._sleep(delay)

        if response.status_code == 403:
            logger.error(
                f"Authorization denied for {method} {path}",
                extra={'status_code': 403, 'response_body': _body_text(response)}
            )
            raise AuthorizationDenied(
                f"{method} {path} denied",
                status_code=403,
                response_body=_body_text(response)
            )

        if not response.ok:
            logger.error(
                f"Request failed: {method} {path} returned {response.status_code}",
                extra={
                    'status_code': response.status_code,
                    'response_body': _body_text(response)
                }
            )
            raise RequestFailed(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
                response_body=_body_text(response)
            )

        return response

    def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        json_body: Optional[Dict[str, Any]]
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        headers, query = self._authorize(params)
        logger.info(
            f"Request issued: {method} {path}",
            extra={'params': _redact(query, self.api_key_param)}
        )
        try:
            response = self.session.request(
                method,
                url,
                params=query,
                json=json_body,
                headers=headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Transport error on {method} {path}: {e}")
            raise RequestFailed(f"{method} {path} failed: {e}") from e

        logger.info(
            f"Response status {response.status_code} for {method} {path}",
            extra={'status_code': response.status_code}
        )
        return response

    def _authorize(self, params: Optional[Dict[str, Any]]) -> tuple[Dict[str, str], Dict[str, Any]]:
        headers = {'Accept': 'application/json'}
        query = dict(params or {})
        if 'bearer' in self.credential_placement:
            headers['Authorization'] = f"Bearer {self.api_key}"
        if 'header' in self.credential_placement:
            headers[self.api_key_header] = self.api_key
        if 'query' in self.credential_placement:
            query[self.api_key_param] = self.api_key
        return headers, query

    def retry_delay(self, response: requests.Response, attempt: int) -> float:
        """
        Compute the backoff before retry number ``attempt + 1``.

        A server-supplied Retry-After wins; otherwise the base delay doubles
        with each attempt. Both are capped at max_retry_delay.

        Args:
            response: The HTTP 429 response
            attempt: Retries already made for this request

        Returns:
            Delay in seconds
        """
        delay = parse_retry_after(response.headers.get('Retry-After'))
        if delay is None:
            delay = self.retry_base_delay * (2 ** attempt)
        return min(delay, self.max_retry_delay)

    def _decode(self, response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RequestFailed(
                f"Response from {response.url} is not JSON",
                status_code=response.status_code,
                response_body=_body_text(response)
            ) from e


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header given in seconds or as an HTTP date.

    Returns:
        Non-negative delay in seconds, or None if absent or unparsable
    """
    if not value:
        return None
    try:
        return max(float(value.strip()), 0.0)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max((retry_at - datetime.now(timezone.utc)).total_seconds(), 0.0)


def _redact(params: Dict[str, Any], secret_param: str) -> Dict[str, Any]:
    return {
        key: (REDACTED if key == secret_param else value)
        for key, value in params.items()
    }


def _body_text(response: requests.Response) -> str:
    try:
        return response.text
    except (UnicodeDecodeError, AttributeError):
        return ''
