"""
Consume-side batch processing: decode stream records, materialize file entries
"""
import base64
import binascii
from dataclasses import asdict, dataclass, field

from records import decode_page
from shared import DecodeError, PipelineError, log_structured


@dataclass
class BatchOutcome:
    """Tally for one invocation; never persisted"""
    records_total: int = 0
    records_decoded: int = 0
    decode_failures: int = 0
    entries_attempted: int = 0
    entries_succeeded: int = 0
    entries_failed: int = 0
    entries_skipped: int = 0
    failures: list = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


def extract_payload(record):
    """Return the raw payload bytes of a Lambda Kinesis record (base64 in the envelope)"""
    if isinstance(record, (bytes, bytearray)):
        return bytes(record)
    try:
        data = record['kinesis']['data']
    except (KeyError, TypeError) as e:
        raise DecodeError(f"Record has no kinesis.data payload: {e!r}") from e
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise DecodeError(f"Error decoding payload: {e}") from e


def process_batch(records, materializer):
    """
    Decode each record and materialize its file entries.

    A record that fails to decode is skipped; an entry that fails is counted.
    Neither stops the rest of the batch.
    """
    outcome = BatchOutcome()

    for index, record in enumerate(records):
        outcome.records_total += 1
        try:
            page = decode_page(extract_payload(record))
        except DecodeError as e:
            outcome.decode_failures += 1
            outcome.failures.append({'record': index, 'error': str(e)})
            log_structured("Skipping undecodable record", severity='ERROR', record=index, error=str(e))
            continue

        outcome.records_decoded += 1

        for entry in page.entries:
            if not entry.is_file:
                outcome.entries_skipped += 1
                continue

            outcome.entries_attempted += 1
            try:
                result = materializer.materialize(entry)
            except PipelineError as e:
                outcome.entries_failed += 1
                outcome.failures.append({'record': index, 'entry': entry.id, 'error': str(e)})
                log_structured(
                    f"Materialization failed: {entry.name}",
                    severity='ERROR',
                    record=index,
                    entry=entry.id,
                    error_type=type(e).__name__,
                    error=str(e)
                )
                continue

            outcome.entries_succeeded += 1
            log_structured(
                "Stored in S3",
                entry=entry.id,
                object=result['object'],
                target_bucket=f"s3://{result['bucket']}",
                size=result['size']
            )

    return outcome
