"""
Process function: Kinesis -> S3
Lambda triggered by the stream. Each record carries one page of Box
folder items; every file entry is downloaded and stored in the target
bucket under <year>/<month>/<day-prefix>/<name>.
"""
from batch import process_batch
from materialize import FileMaterializer
from shared import PipelineConfig, create_aws_client, log_structured


def process_records(event, context):
    """Lambda handler. Configuration errors fail the invocation; record errors do not."""
    records = event.get('Records', [])
    log_structured("Processing Kinesis batch", records=len(records))

    config = PipelineConfig.from_env().require('AWS_REGION')
    s3_client = create_aws_client('s3', config)
    materializer = FileMaterializer(s3_client, config.target_bucket)

    outcome = process_batch(records, materializer)

    log_structured(
        "Batch complete",
        severity='WARNING' if outcome.failures else 'INFO',
        records=outcome.records_total,
        decode_failures=outcome.decode_failures,
        attempted=outcome.entries_attempted,
        success=outcome.entries_succeeded,
        failures=outcome.entries_failed,
        skipped=outcome.entries_skipped
    )

    return outcome.to_dict()
