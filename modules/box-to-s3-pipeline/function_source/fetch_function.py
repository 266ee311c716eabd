"""
Fetch function: Box folder listing -> Kinesis
HTTP-triggered (Cloud Scheduler). Fetches one page of folder items and
publishes it to the stream as a single record.
"""
import functions_framework
from botocore.exceptions import BotoCoreError, ClientError

from box_client import fetch_folder_items, get_access_token
from records import classify_entries, encode_page
from shared import (
    PipelineConfig, PipelineError, PublishError, create_aws_client, log_structured
)

# Kinesis rejects records whose data blob exceeds 1 MiB
MAX_RECORD_BYTES = 1024 * 1024

REQUIRED_CONFIG = ('CLIENT_ID', 'CLIENT_SECRET', 'AWS_REGION', 'KINESIS_STREAM_NAME', 'PARTITION_KEY')


def publish_page(kinesis_client, page, stream_name, partition_key):
    """Write one page to the stream, returns shard id and sequence number"""
    data = encode_page(page)
    if len(data) > MAX_RECORD_BYTES:
        raise PublishError(f"Encoded page is {len(data)} bytes, over the {MAX_RECORD_BYTES} byte record limit")

    try:
        response = kinesis_client.put_record(
            StreamName=stream_name,
            Data=data,
            PartitionKey=partition_key
        )
    except (BotoCoreError, ClientError) as e:
        raise PublishError(f"Error publishing to Kinesis: {e}") from e

    return {
        'shard_id': response.get('ShardId'),
        'sequence_number': response.get('SequenceNumber'),
        'bytes': len(data),
    }


def _optional_int(args, name):
    value = args.get(name)
    if value in (None, ''):
        return None
    number = int(value)
    if number < 0:
        raise ValueError(f"{name} must not be negative")
    return number


@functions_framework.http
def fetch_and_publish(request):
    """
    Fetch the configured Box folder listing and publish it to Kinesis.
    Optional query args offset and limit select the page.
    """
    try:
        offset = _optional_int(request.args, 'offset')
        limit = _optional_int(request.args, 'limit')
    except ValueError as e:
        log_structured("Rejected: bad pagination arguments", severity='WARNING', error=str(e))
        return {'error': str(e)}, 400

    try:
        config = PipelineConfig.from_env().require(*REQUIRED_CONFIG)

        token = get_access_token(config)
        page = fetch_folder_items(token, config, offset=offset, limit=limit)

        classification = classify_entries(page)
        log_structured(
            "Fetched folder items",
            folder=config.box_folder_id,
            total_count=page.total_count,
            offset=page.offset,
            entries=len(page.entries),
            file_names=classification.file_names,
            folder_names=classification.folder_names,
            owner_ids=classification.owner_ids
        )

        kinesis_client = create_aws_client('kinesis', config)
        published = publish_page(kinesis_client, page, config.stream_name, config.partition_key)

        log_structured(
            "Published to Kinesis",
            stream=config.stream_name,
            shard_id=published['shard_id'],
            sequence_number=published['sequence_number'],
            bytes=published['bytes']
        )

        result = {
            'entries': len(page.entries),
            'files': len(classification.file_names),
            'folders': len(classification.folder_names),
            'total_count': page.total_count,
            'offset': page.offset,
            'limit': page.limit,
            'sequence_number': published['sequence_number'],
        }

        return result, 200

    except PipelineError as e:
        log_structured(
            "Fetch function failed",
            severity='ERROR',
            error_type=type(e).__name__,
            error=str(e)
        )
        return {'error': str(e)}, 500
