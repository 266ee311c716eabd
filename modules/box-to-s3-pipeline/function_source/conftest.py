"""
In-memory stand-ins for Box HTTP, S3 and Kinesis used across the test modules
"""
import copy

import pytest
import requests

from shared import PipelineConfig

BOX_API = 'https://api.box.test'

LISTING_BODY = {
    'total_count': 2,
    'entries': [
        {
            'type': 'file',
            'id': '1001',
            'etag': '0',
            'name': 'report.pdf',
            'download_url': 'https://dl.box.test/1001',
            'content_created_at': '2023-11-05T10:00:00Z',
            'owned_by': {'type': 'user', 'id': '42', 'name': 'Ada Lovelace', 'login': 'ada@example.com'},
        },
        {
            'type': 'folder',
            'id': '2002',
            'etag': '1',
            'name': 'Photos',
            'owned_by': {'type': 'user', 'id': '43', 'name': 'Grace Hopper', 'login': 'grace@example.com'},
        },
    ],
    'offset': 0,
    'limit': 100,
    'order': [{'by': 'type', 'direction': 'ASC'}, {'by': 'name', 'direction': 'ASC'}],
}


class FakeResponse:
    def __init__(self, status_code=200, body=None, chunks=()):
        self.status_code = status_code
        self.body = body
        self.chunks = list(chunks)
        self.closed = False

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True


class FakeSession:
    """Routes (method, url) to canned responses or exceptions and records every call"""
    def __init__(self):
        self.responses = {}
        self.calls = []

    def add(self, method, url, response):
        self.responses[(method, url)] = response

    def _respond(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses[(method, url)]
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._respond('GET', url, kwargs)

    def post(self, url, **kwargs):
        return self._respond('POST', url, kwargs)


class FakeS3:
    """Keeps uploaded objects keyed by (bucket, key); same key overwrites"""
    def __init__(self, error=None):
        self.error = error
        self.objects = {}
        self.calls = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None, Config=None):
        self.calls.append({'bucket': bucket, 'key': key, 'extra': ExtraArgs, 'config': Config})
        if self.error is not None:
            raise self.error
        self.objects[(bucket, key)] = {'body': fileobj.read(), 'extra': ExtraArgs}


class FakeKinesis:
    def __init__(self, error=None):
        self.error = error
        self.records = []

    def put_record(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.records.append(kwargs)
        return {'ShardId': 'shardId-000000000000', 'SequenceNumber': str(len(self.records))}


@pytest.fixture
def listing_body():
    return copy.deepcopy(LISTING_BODY)


@pytest.fixture
def http_session():
    return FakeSession()


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
def kinesis():
    return FakeKinesis()


@pytest.fixture
def config():
    return PipelineConfig(
        client_id='client-id',
        client_secret='client-secret',
        aws_region='us-east-1',
        stream_name='box-items',
        partition_key='box',
        target_bucket='box-archive',
        box_api_url=BOX_API,
    )
