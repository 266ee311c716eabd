"""
Unit tests for shared.py utilities
Run with: python -m pytest test_shared.py -v

What this validates:
- log_structured emits one JSON object per line with severity, extra fields and trace ids
- PipelineConfig reads the environment once and reports every missing variable
- create_aws_client uses the default chain, or federated credentials when a role is set
"""
import json
import urllib.error

import flask
import pytest

import shared
from shared import ConfigError, CredentialError, PipelineConfig, create_aws_client, log_structured


def read_log(capsys):
    return json.loads(capsys.readouterr().out.strip())


def test_log_structured_basic(capsys, monkeypatch):
    monkeypatch.delenv('_X_AMZN_TRACE_ID', raising=False)

    log_structured("Stored in S3", object='2023/11/0/report.pdf', size=13)

    assert read_log(capsys) == {
        'message': 'Stored in S3',
        'severity': 'INFO',
        'object': '2023/11/0/report.pdf',
        'size': 13,
    }


def test_log_structured_renders_non_json_values(capsys):
    log_structured("Failed", severity='ERROR', error=ValueError('boom'))

    entry = read_log(capsys)
    assert entry['severity'] == 'ERROR'
    assert entry['error'] == 'boom'


def test_log_structured_adds_cloud_trace(capsys, monkeypatch):
    monkeypatch.setenv('GOOGLE_CLOUD_PROJECT', 'box-pipeline')
    monkeypatch.delenv('GCP_PROJECT', raising=False)
    app = flask.Flask(__name__)

    with app.test_request_context(headers={'X-Cloud-Trace-Context': 'abc123/1;o=1'}):
        log_structured("Fetched folder items")

    assert read_log(capsys)['logging.googleapis.com/trace'] == 'projects/box-pipeline/traces/abc123'


def test_log_structured_adds_xray_trace(capsys, monkeypatch):
    monkeypatch.setenv('_X_AMZN_TRACE_ID', 'Root=1-5759e988-bd862e3fe1be46a994272793')

    log_structured("Batch complete")

    assert read_log(capsys)['xray_trace_id'] == 'Root=1-5759e988-bd862e3fe1be46a994272793'


def test_config_from_env():
    config = PipelineConfig.from_env({
        'CLIENT_ID': 'id',
        'CLIENT_SECRET': 'secret',
        'AWS_REGION': 'eu-west-1',
        'KINESIS_STREAM_NAME': 'box-items',
        'PARTITION_KEY': 'box',
        'BOX_FOLDER_ID': '',
        'UNRELATED': 'ignored',
    })

    assert config.client_id == 'id'
    assert config.aws_region == 'eu-west-1'
    assert config.stream_name == 'box-items'
    assert config.partition_key == 'box'
    # empty values fall back to defaults
    assert config.box_folder_id == '0'
    assert config.target_bucket == 'box-poc-processed-data'
    assert config.aws_role_arn is None


def test_config_require_lists_all_missing():
    config = PipelineConfig.from_env({'CLIENT_ID': 'id'})

    with pytest.raises(ConfigError) as excinfo:
        config.require('CLIENT_ID', 'CLIENT_SECRET', 'AWS_REGION')

    message = str(excinfo.value)
    assert 'CLIENT_SECRET' in message and 'AWS_REGION' in message
    assert 'CLIENT_ID' not in message


def test_config_require_returns_config():
    config = PipelineConfig(aws_region='us-east-1')

    assert config.require('AWS_REGION') is config


def test_config_require_rejects_unknown_names():
    with pytest.raises(ConfigError):
        PipelineConfig().require('NOT_AN_OPTION')


def test_create_aws_client_default_chain(monkeypatch):
    created = []
    monkeypatch.setattr(shared.boto3, 'client', lambda service, **kwargs: created.append((service, kwargs)) or 'client')

    client = create_aws_client('s3', PipelineConfig(aws_region='us-east-1'))

    assert client == 'client'
    assert created == [('s3', {'region_name': 'us-east-1'})]


def test_create_aws_client_with_federated_role(monkeypatch):
    created = []
    monkeypatch.setattr(shared.boto3, 'client', lambda service, **kwargs: created.append((service, kwargs)) or 'client')
    monkeypatch.setattr(shared, 'get_aws_credentials', lambda config: {
        'AccessKeyId': 'AKIA', 'SecretAccessKey': 'secret', 'SessionToken': 'session',
    })
    config = PipelineConfig(aws_region='us-east-1', aws_role_arn='arn:aws:iam::123456789012:role/box')

    create_aws_client('kinesis', config)

    assert created == [('kinesis', {
        'region_name': 'us-east-1',
        'aws_access_key_id': 'AKIA',
        'aws_secret_access_key': 'secret',
        'aws_session_token': 'session',
    })]


def test_create_aws_client_federation_failure(monkeypatch, capsys):
    def unreachable(req):
        raise urllib.error.URLError('metadata.google.internal not found')

    monkeypatch.setattr(shared.urllib.request, 'urlopen', unreachable)
    config = PipelineConfig(aws_region='us-east-1', aws_role_arn='arn:aws:iam::123456789012:role/box')

    with pytest.raises(CredentialError):
        create_aws_client('kinesis', config)

    assert read_log(capsys)['severity'] == 'ERROR'
