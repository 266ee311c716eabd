"""
Box API access: client-credentials token exchange and folder listing
"""
import requests

from records import page_from_dict
from shared import CredentialError, DecodeError, FetchError

LISTING_FIELDS = (
    'id', 'type', 'name', 'etag', 'download_url', 'content_created_at',
    'created_at', 'owned_by', 'modified_by', 'created_by',
)

http_session = requests.Session()


def get_access_token(config, session=None):
    """Exchange the configured client id/secret for a bearer token"""
    session = session or http_session
    url = f"{config.box_api_url}/oauth2/token"
    payload = {
        'grant_type': 'client_credentials',
        'client_id': config.client_id,
        'client_secret': config.client_secret,
        'box_subject_type': config.box_subject_type,
    }
    if config.box_subject_id:
        payload['box_subject_id'] = config.box_subject_id

    try:
        response = session.post(url, data=payload)
        response.raise_for_status()
        body = response.json()
    except requests.RequestException as e:
        raise CredentialError(f"Failed to get access token: {e}") from e
    except ValueError as e:
        raise CredentialError(f"Failed to decode access token response: {e}") from e

    token = body.get('access_token') if isinstance(body, dict) else None
    if not token:
        raise CredentialError("Access token response has no access_token")
    return token


def fetch_folder_items(token, config, offset=None, limit=None, session=None):
    """
    Fetch one page of the configured folder's items.
    Does not follow pagination; pass an advanced offset for the next page.
    """
    session = session or http_session
    url = f"{config.box_api_url}/2.0/folders/{config.box_folder_id}/items"
    params = {'fields': ','.join(LISTING_FIELDS)}
    if offset is not None:
        params['offset'] = offset
    if limit is not None:
        params['limit'] = limit

    try:
        response = session.get(
            url,
            params=params,
            headers={'Authorization': f"Bearer {token}"}
        )
    except requests.RequestException as e:
        raise FetchError(f"Failed to get data: {e}") from e

    if response.status_code != 200:
        raise FetchError(f"Non-OK status code: {response.status_code}")

    try:
        return page_from_dict(response.json())
    except (ValueError, DecodeError) as e:
        raise FetchError(f"Malformed listing response: {e}") from e
