"""
Copy Box files into S3 under their date-partitioned key
"""
import mimetypes
import tempfile

import requests
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from records import derive_object_key
from shared import DownloadError, UploadError

CHUNK_SIZE = 65536
MULTIPART_SIZE = 8 * 1024 * 1024

# Multipart above 8 MiB; no worker threads, each invocation stays single threaded
DEFAULT_TRANSFER_CONFIG = TransferConfig(
    multipart_threshold=MULTIPART_SIZE,
    multipart_chunksize=MULTIPART_SIZE,
    use_threads=False,
)


def download_to_file(url, fileobj, session, chunk_size=CHUNK_SIZE):
    """Stream url into fileobj, returns the number of bytes written"""
    size = 0
    try:
        with session.get(url, stream=True) as response:
            response.raise_for_status()
            for chunk in response.iter_content(chunk_size=chunk_size):
                if chunk:
                    fileobj.write(chunk)
                    size += len(chunk)
    except requests.RequestException as e:
        raise DownloadError(f"Failed to download file: {e}") from e
    except OSError as e:
        raise DownloadError(f"Failed to write file content: {e}") from e
    return size


class FileMaterializer:
    """Download-then-upload of a single file entry into the target bucket"""

    def __init__(self, s3_client, target_bucket, session=None,
                 transfer_config=DEFAULT_TRANSFER_CONFIG, transferred_by='process-function'):
        self.s3_client = s3_client
        self.target_bucket = target_bucket
        self.session = session or requests.Session()
        self.transfer_config = transfer_config
        self.transferred_by = transferred_by

    def upload_args(self, entry):
        content_type, _ = mimetypes.guess_type(entry.name)
        return {
            'ContentType': content_type or 'application/octet-stream',
            'Metadata': {
                'box-id': entry.id,
                'box-etag': entry.etag or '',
                'owner-id': entry.owned_by.id,
                'content-created-at': entry.content_created_at,
                'transferred-by': self.transferred_by,
            }
        }

    def materialize(self, entry):
        """
        Store one Box file in S3. Non-file entries are skipped without side effects.
        Re-delivery of the same entry writes the same key, overwriting in place.
        """
        if not entry.is_file:
            return {'status': 'skipped', 'id': entry.id, 'type': entry.type}

        object_key = derive_object_key(entry)
        if not entry.download_url:
            raise DownloadError(f"Entry {entry.id} has no download_url")

        try:
            local_file = tempfile.TemporaryFile()
        except OSError as e:
            raise DownloadError(f"Failed to create local file: {e}") from e

        # Temp file lives only for this entry; closing it deletes it
        with local_file:
            size = download_to_file(entry.download_url, local_file, self.session)
            try:
                local_file.seek(0)
            except OSError as e:
                raise DownloadError(f"Failed to rewind local file: {e}") from e

            try:
                self.s3_client.upload_fileobj(
                    local_file,
                    self.target_bucket,
                    object_key,
                    ExtraArgs=self.upload_args(entry),
                    Config=self.transfer_config
                )
            except (Boto3Error, BotoCoreError, ClientError, OSError) as e:
                raise UploadError(
                    f"Failed to upload file to s3://{self.target_bucket}/{object_key}: {e}"
                ) from e

        return {
            'status': 'success',
            'id': entry.id,
            'object': object_key,
            'bucket': self.target_bucket,
            'size': size,
        }
