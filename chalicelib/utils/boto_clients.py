import os

import boto3
from botocore.config import Config


def main_boto_region():
    return os.environ.get('MAIN_BOTO_REGION', 'eu-central-1')


def aws_config_ddb():
    return Config(retries={'max_attempts': 30}, region_name=os.environ.get('AWS_REGION', main_boto_region()))


# Clients are built on every call so that they always pick up the current credentials and region.

def get_dynamodb_resource():
    # DynamoDB has cross region resources for optimisation for calls from various regions.
    if os.environ.get('ENDPOINT_URL'):
        return boto3.resource('dynamodb', endpoint_url=os.environ.get('ENDPOINT_URL'), config=aws_config_ddb())
    return boto3.resource('dynamodb', config=aws_config_ddb())


def get_ses_client():
    # Simple Email Service Client.
    return boto3.client('ses', config=Config(retries={'max_attempts': 30},
                                             region_name=os.environ.get('SES_REGION', 'us-east-1')))
