"""Shared fixtures, including an in-memory fake of the event type API."""
import json
import logging
import re
from collections import deque
from unittest.mock import Mock
from urllib.parse import parse_qs, urlsplit

import pytest
import responses

from processor.payload_builder import EventTypePayloadBuilder
from reconciliation.reconciler import Reconciler
from scheduling_api.directory_reader import RemoteDirectoryReader
from scheduling_api.request_executor import RequestExecutor
from scheduling_api.resource_matcher import ResourceMatcher

BASE_URL = 'https://api.example.test/v1'
LIST_URL = re.compile(r'https://api\.example\.test/v1/event-types(\?.*)?$')
ITEM_URL = re.compile(r'https://api\.example\.test/v1/event-types/(\d+)(\?.*)?$')


class FakeSchedulingApi:
    """Stateful fake of the event type endpoints."""

    def __init__(self, rsps, owner_id=42):
        self.event_types = {}
        self.owner_id = owner_id
        self.hide_hidden_in_bulk = False
        self.calls = []
        self._next_id = 1
        self._queued = deque()

        rsps.add_callback(responses.GET, LIST_URL, callback=self._list)
        rsps.add_callback(responses.POST, LIST_URL, callback=self._create)
        rsps.add_callback(responses.PUT, ITEM_URL, callback=self._update)
        rsps.add_callback(responses.PATCH, ITEM_URL, callback=self._update)
        rsps.add_callback(responses.DELETE, ITEM_URL, callback=self._delete)

    def add(self, slug, **fields):
        event_type = {
            'id': self._next_id,
            'slug': slug,
            'title': fields.pop('title', slug),
            'userId': fields.pop('userId', self.owner_id),
            'hidden': fields.pop('hidden', False),
        }
        event_type.update(fields)
        self.event_types[event_type['id']] = event_type
        self._next_id += 1
        return event_type

    def slugs(self):
        return sorted(event_type['slug'] for event_type in self.event_types.values())

    def queue_failure(self, method, status, headers=None, body=''):
        """Answer the next request with this method with a canned failure."""
        self._queued.append((method, status, headers or {}, body))

    def calls_for(self, method):
        return [call for call in self.calls if call[0] == method]

    def _canned(self, request):
        for entry in list(self._queued):
            if entry[0] == request.method:
                self._queued.remove(entry)
                return entry[1], entry[2], entry[3]
        return None

    def _record(self, request):
        self.calls.append((request.method, request.url))
        return self._canned(request)

    def _list(self, request):
        canned = self._record(request)
        if canned:
            return canned

        query = parse_qs(urlsplit(request.url).query)
        limit = int(query.get('limit', ['100'])[0])
        page = int(query.get('page', ['1'])[0])
        slug = query.get('slug', [None])[0]

        items = sorted(self.event_types.values(), key=lambda item: item['id'])
        if slug is not None:
            items = [item for item in items if item['slug'] == slug]
        elif self.hide_hidden_in_bulk:
            items = [item for item in items if not item.get('hidden')]

        start = (page - 1) * limit
        page_items = items[start:start + limit]
        has_more = start + limit < len(items)
        body = {
            'event_types': page_items,
            'pagination': {
                'nextPage': page + 1 if has_more else None,
                'total': len(items)
            }
        }
        return 200, {}, json.dumps(body)

    def _create(self, request):
        canned = self._record(request)
        if canned:
            return canned

        payload = json.loads(request.body)
        fields = {key: value for key, value in payload.items() if key != 'slug'}
        event_type = self.add(payload['slug'], **fields)
        return 201, {}, json.dumps({'event_type': event_type})

    def _update(self, request):
        canned = self._record(request)
        if canned:
            return canned

        event_type_id = int(ITEM_URL.match(request.url).group(1))
        if event_type_id not in self.event_types:
            return 404, {}, json.dumps({'message': 'Event type not found'})
        self.event_types[event_type_id].update(json.loads(request.body))
        return 200, {}, json.dumps({'event_type': self.event_types[event_type_id]})

    def _delete(self, request):
        canned = self._record(request)
        if canned:
            return canned

        event_type_id = int(ITEM_URL.match(request.url).group(1))
        if self.event_types.pop(event_type_id, None) is None:
            return 404, {}, json.dumps({'message': 'Event type not found'})
        return 200, {}, json.dumps({'message': 'Event type deleted'})


@pytest.fixture
def fake_api():
    """Activate responses with the fake event type API registered."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield FakeSchedulingApi(rsps)


@pytest.fixture
def sleep():
    """Sleep replacement recording every requested delay."""
    return Mock()


@pytest.fixture
def executor(sleep):
    """RequestExecutor against the fake API without inter-request delay."""
    return RequestExecutor(BASE_URL, 'test-key', request_delay=0, sleep=sleep)


@pytest.fixture
def reader(executor):
    return RemoteDirectoryReader(executor, page_size=2)


@pytest.fixture
def reconciler(executor, reader):
    """Reconciler wired to the fake API with a small page size."""
    return Reconciler(reader, ResourceMatcher(reader), executor, EventTypePayloadBuilder())


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)
