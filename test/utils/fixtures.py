import json
import os

import pytest
from chalice.test import Client
from moto import mock_aws

from app import app

from chalicelib.constants import keys_structure
from chalicelib.utils.boto_clients import get_dynamodb_resource
from chalicelib.utils.logger import logger

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def stage_environment_variables(stage: str) -> dict:
    """ Environment variables of the stage as chalice deploys them, stage values override the global ones """
    with open(os.path.join(PROJECT_DIR, '.chalice', 'config.json')) as config_file:
        config = json.load(config_file)
    return {
        **config.get('environment_variables', {}),
        **config.get('stages', {}).get(stage, {}).get('environment_variables', {})
    }


def get_index(index_name: str, hash_key: str, range_key: str) -> dict:
    return {
        'IndexName': index_name,
        'KeySchema': [
            {'AttributeName': hash_key, 'KeyType': 'HASH'},
            {'AttributeName': range_key, 'KeyType': 'RANGE'}
        ],
        'Projection': {'ProjectionType': 'ALL'}
    }


def create_gen_table():
    """ The general table as it is deployed, including the order indexes """
    key_attributes = ('partkey', 'sortkey', 'gsi_user_pk', 'gsi_user_sk', 'gsi_university_pk', 'gsi_university_sk')
    return get_dynamodb_resource().create_table(
        TableName=os.environ['GEN_TABLE_NAME'],
        KeySchema=[
            {'AttributeName': 'partkey', 'KeyType': 'HASH'},
            {'AttributeName': 'sortkey', 'KeyType': 'RANGE'}
        ],
        AttributeDefinitions=[{'AttributeName': name, 'AttributeType': 'S'} for name in key_attributes],
        GlobalSecondaryIndexes=[
            get_index(keys_structure.user_orders_index, 'gsi_user_pk', 'gsi_user_sk'),
            get_index(keys_structure.university_orders_index, 'gsi_university_pk', 'gsi_university_sk')
        ],
        BillingMode='PAY_PER_REQUEST'
    )


@pytest.fixture
def aws_environment(monkeypatch):
    stage = os.environ.get('stage', 'test')
    logger.debug(f'aws_environment ::: stage = {stage}')
    for name, value in stage_environment_variables(stage).items():
        monkeypatch.setenv(name, value)
    for name in ('AWS_ACCESS_KEY_ID', 'AWS_SECRET_ACCESS_KEY', 'AWS_SECURITY_TOKEN', 'AWS_SESSION_TOKEN'):
        monkeypatch.setenv(name, 'testing')
    monkeypatch.delenv('ENDPOINT_URL', raising=False)
    monkeypatch.delenv('GEN_TABLE_STREAM_ARN', raising=False)
    with mock_aws():
        create_gen_table()
        yield stage


@pytest.fixture
def chalice_gateway(aws_environment):
    with Client(app, stage_name=aws_environment, project_dir=PROJECT_DIR) as client:
        yield client
