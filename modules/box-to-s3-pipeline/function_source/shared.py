"""
Shared utilities for the Box -> Kinesis -> S3 pipeline functions
"""
import os
import json
import urllib.request
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import request, has_request_context

DEFAULT_TARGET_BUCKET = 'box-poc-processed-data'
DEFAULT_BOX_API_URL = 'https://api.box.com'


class PipelineError(Exception):
    """Base class for all pipeline failures"""


class ConfigError(PipelineError):
    pass


class CredentialError(PipelineError):
    pass


class FetchError(PipelineError):
    pass


class PublishError(PipelineError):
    pass


class EncodeError(PipelineError):
    pass


class DecodeError(PipelineError):
    pass


class MalformedTimestampError(PipelineError):
    pass


class MalformedEntryError(PipelineError):
    pass


class DownloadError(PipelineError):
    pass


class UploadError(PipelineError):
    pass


def get_trace_id():
    """Extract trace ID from the current invocation

    The HTTP stage runs under functions-framework (Flask under the hood) and
    carries X-Cloud-Trace-Context. Returns None outside a request context.
    """
    try:
        if has_request_context():
            trace_header = request.headers.get('X-Cloud-Trace-Context', '')
            if trace_header and '/' in trace_header:
                return trace_header.split('/')[0]
    except RuntimeError:
        pass
    return None


def log_structured(message, severity='INFO', **kwargs):
    """Output structured JSON log for Cloud Logging / CloudWatch

    Args:
        message: Log message
        severity: Log severity (INFO, ERROR, WARNING, etc)
        **kwargs: Additional fields to include in log
    """
    entry = {
        'message': message,
        'severity': severity,
    }

    # Add trace for correlation with request logs
    trace_id = get_trace_id()
    if trace_id:
        project_id = os.environ.get('GCP_PROJECT', os.environ.get('GOOGLE_CLOUD_PROJECT', ''))
        entry['logging.googleapis.com/trace'] = f"projects/{project_id}/traces/{trace_id}"

    xray_trace_id = os.environ.get('_X_AMZN_TRACE_ID')
    if xray_trace_id:
        entry['xray_trace_id'] = xray_trace_id

    # Add any additional fields
    entry.update(kwargs)

    print(json.dumps(entry, default=str))


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for both pipeline stages, read once per invocation"""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    aws_region: Optional[str] = None
    stream_name: Optional[str] = None
    partition_key: Optional[str] = None
    target_bucket: str = DEFAULT_TARGET_BUCKET
    box_subject_type: str = 'user'
    box_subject_id: Optional[str] = None
    box_folder_id: str = '0'
    box_api_url: str = DEFAULT_BOX_API_URL
    aws_role_arn: Optional[str] = None

    ENV_FIELDS = {
        'CLIENT_ID': 'client_id',
        'CLIENT_SECRET': 'client_secret',
        'AWS_REGION': 'aws_region',
        'KINESIS_STREAM_NAME': 'stream_name',
        'PARTITION_KEY': 'partition_key',
        'TARGET_BUCKET': 'target_bucket',
        'BOX_SUBJECT_TYPE': 'box_subject_type',
        'BOX_SUBJECT_ID': 'box_subject_id',
        'BOX_FOLDER_ID': 'box_folder_id',
        'BOX_API_URL': 'box_api_url',
        'AWS_ROLE_ARN': 'aws_role_arn',
    }

    @classmethod
    def from_env(cls, environ=None):
        """Build a config from environment variables; empty values count as unset"""
        if environ is None:
            environ = os.environ
        values = {}
        for env_name, field_name in cls.ENV_FIELDS.items():
            value = environ.get(env_name)
            if value:
                values[field_name] = value
        return cls(**values)

    def require(self, *env_names):
        """Raise ConfigError naming every listed variable that is not set"""
        missing = []
        for env_name in env_names:
            field_name = self.ENV_FIELDS.get(env_name)
            if field_name is None:
                raise ConfigError(f"Unknown configuration option: {env_name}")
            if not getattr(self, field_name):
                missing.append(env_name)
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
        return self


def get_gcp_identity_token(audience):
    """Get GCP identity token (JWT) from metadata service"""
    metadata_server_url = (
        "http://metadata.google.internal/computeMetadata/v1/instance"
        f"/service-accounts/default/identity?audience={audience}"
    )

    req = urllib.request.Request(metadata_server_url)
    req.add_header("Metadata-Flavor", "Google")

    try:
        response = urllib.request.urlopen(req)
        return response.read().decode('utf-8')
    except Exception as e:
        log_structured(
            "Failed to get identity token from metadata service",
            severity='ERROR',
            error=str(e),
            audience=audience
        )
        raise


def get_aws_credentials(config):
    """Get temporary AWS credentials using OIDC JWT from metadata server"""
    # Get ID token (JWT) from GCP metadata service with role ARN as audience
    id_token = get_gcp_identity_token(config.aws_role_arn)

    sts_client = boto3.client('sts', region_name=config.aws_region)

    response = sts_client.assume_role_with_web_identity(
        RoleArn=config.aws_role_arn,
        RoleSessionName='box-to-s3-pipeline-session',
        WebIdentityToken=id_token,
        DurationSeconds=3600
    )

    return response['Credentials']


def create_aws_client(service, config):
    """
    Create a boto3 client for the configured region.
    With AWS_ROLE_ARN set the client uses federated temporary credentials,
    otherwise the default credential chain (Lambda role, env vars).
    """
    if not config.aws_role_arn:
        return boto3.client(service, region_name=config.aws_region)

    try:
        aws_creds = get_aws_credentials(config)
    except (OSError, BotoCoreError, ClientError) as e:
        raise CredentialError(f"AWS credential federation failed: {e}") from e

    return boto3.client(
        service,
        region_name=config.aws_region,
        aws_access_key_id=aws_creds['AccessKeyId'],
        aws_secret_access_key=aws_creds['SecretAccessKey'],
        aws_session_token=aws_creds['SessionToken']
    )
