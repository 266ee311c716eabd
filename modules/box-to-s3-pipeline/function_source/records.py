"""
Box folder listing data model and its stream encoding

A Page is one listing response from Box (entries + pagination cursors).
It is published to Kinesis as a single JSON record with the same shape
Box returns, so the consumer can decode it with the same parser.
"""
import json
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Optional, Tuple

from shared import DecodeError, EncodeError, MalformedEntryError, MalformedTimestampError

FILE_TYPE = 'file'
FOLDER_TYPE = 'folder'


@dataclass(frozen=True)
class Owner:
    id: str = ''
    name: str = ''
    login: str = ''
    type: str = 'user'


@dataclass(frozen=True)
class Entry:
    """One file/folder record; download_url and content_created_at only matter for files"""
    type: str
    id: str
    name: str
    etag: Optional[str] = None
    download_url: Optional[str] = None
    content_created_at: Optional[str] = None
    owned_by: Owner = field(default_factory=Owner)

    @property
    def is_file(self):
        return self.type == FILE_TYPE


@dataclass(frozen=True)
class OrderBy:
    by: str
    direction: str


@dataclass(frozen=True)
class Page:
    entries: Tuple[Entry, ...] = ()
    total_count: int = 0
    offset: int = 0
    limit: int = 0
    order: Tuple[OrderBy, ...] = ()


EntryClassification = namedtuple('EntryClassification', ['file_names', 'folder_names', 'owner_ids'])


def is_file_name(name):
    """Name-based file heuristic: anything with a dot is treated as a file.

    Kept for compatibility with existing reports; Entry.is_file is the
    authoritative check and is what routing uses.
    """
    return '.' in name


def classify_entries(page):
    """Split a page into file names, folder names and owner ids, in source order"""
    file_names = []
    folder_names = []
    owner_ids = []
    for entry in page.entries:
        if is_file_name(entry.name):
            file_names.append(entry.name)
        else:
            folder_names.append(entry.name)
        owner_ids.append(entry.owned_by.id)
    return EntryClassification(file_names, folder_names, owner_ids)


def derive_object_key(entry):
    """
    Build the S3 key <year>/<month>/<day-prefix>/<name> from content_created_at.

    Only the first character of the day is kept ("2023-11-05..." -> "2023/11/0"),
    matching the layout already present in the bucket.
    """
    if not entry.name:
        raise MalformedEntryError(f"Entry {entry.id} has no name")

    timestamp = entry.content_created_at
    if not timestamp:
        raise MalformedTimestampError(f"Entry {entry.id} has no content_created_at")

    parts = timestamp.split('-')
    if len(parts) < 3 or not parts[2]:
        raise MalformedTimestampError(
            f"Entry {entry.id} has malformed content_created_at: {timestamp!r}"
        )

    year, month, day = parts[0], parts[1], parts[2][:1]
    return '/'.join([year, month, day]) + '/' + entry.name


def _string(data, key, default=''):
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        raise DecodeError(f"Field {key!r} must be a scalar, got {type(value).__name__}")
    return str(value)


def _integer(data, key):
    value = data.get(key, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"Field {key!r} must be an integer, got {value!r}")
    return value


def _object(value, what):
    if not isinstance(value, dict):
        raise DecodeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def entry_from_dict(data):
    data = _object(data, 'Entry')
    owner = data.get('owned_by') or {}
    owner = _object(owner, 'owned_by')
    return Entry(
        type=_string(data, 'type'),
        id=_string(data, 'id'),
        name=_string(data, 'name'),
        etag=_string(data, 'etag', None),
        download_url=_string(data, 'download_url', None),
        content_created_at=_string(data, 'content_created_at', None),
        owned_by=Owner(
            id=_string(owner, 'id'),
            name=_string(owner, 'name'),
            login=_string(owner, 'login'),
            type=_string(owner, 'type', 'user'),
        ),
    )


def page_from_dict(data):
    """Parse a Box listing body; unknown fields are ignored, 'entries' is mandatory"""
    data = _object(data, 'Page')
    if 'entries' not in data:
        raise DecodeError("Page is missing required field 'entries'")
    entries = data['entries']
    if not isinstance(entries, list):
        raise DecodeError("Field 'entries' must be an array")

    order = data.get('order') or []
    if not isinstance(order, list):
        raise DecodeError("Field 'order' must be an array")

    return Page(
        entries=tuple(entry_from_dict(item) for item in entries),
        total_count=_integer(data, 'total_count'),
        offset=_integer(data, 'offset'),
        limit=_integer(data, 'limit'),
        order=tuple(
            OrderBy(by=_string(item, 'by'), direction=_string(item, 'direction'))
            for item in (_object(o, 'order item') for o in order)
        ),
    )


def page_to_dict(page):
    return {
        'total_count': page.total_count,
        'entries': [
            {
                'type': entry.type,
                'id': entry.id,
                'etag': entry.etag,
                'name': entry.name,
                'download_url': entry.download_url,
                'content_created_at': entry.content_created_at,
                'owned_by': {
                    'type': entry.owned_by.type,
                    'id': entry.owned_by.id,
                    'name': entry.owned_by.name,
                    'login': entry.owned_by.login,
                },
            }
            for entry in page.entries
        ],
        'offset': page.offset,
        'limit': page.limit,
        'order': [{'by': o.by, 'direction': o.direction} for o in page.order],
    }


def encode_page(page):
    """Serialize a page to the UTF-8 JSON payload written to the stream"""
    try:
        return json.dumps(page_to_dict(page), allow_nan=False, ensure_ascii=False).encode('utf-8')
    except (TypeError, ValueError, AttributeError) as e:
        raise EncodeError(f"Page cannot be encoded: {e}") from e


def decode_page(payload):
    """Inverse of encode_page; raises DecodeError on anything that isn't a Page"""
    try:
        data = json.loads(payload.decode('utf-8') if isinstance(payload, (bytes, bytearray)) else payload)
    except (UnicodeDecodeError, ValueError, TypeError, RecursionError) as e:
        raise DecodeError(f"Payload is not valid JSON: {e}") from e
    return page_from_dict(data)
