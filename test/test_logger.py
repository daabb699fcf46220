import json
import logging
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from chalicelib.utils import exceptions
from chalicelib.utils.logger import LOGGER_NAME, CustomJSONEncoder, log_exception, logger, set_request_id


@pytest.fixture
def captured_logs(caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    yield caplog
    logger.current_request_id = None


def test_messages_are_prefixed_with_request_id(captured_logs):
    set_request_id(SimpleNamespace(lambda_context=SimpleNamespace(aws_request_id='8a1f2c3d-0000-4b5e-9c1e-1f1b0c7f6a11')))

    logger.info('endpoint_get_cart ::: started')

    assert captured_logs.messages[-1] == '[1f1b0c7f6a11] : endpoint_get_cart ::: started'


def test_request_without_lambda_context(captured_logs):
    set_request_id(SimpleNamespace())

    logger.warning('no context')

    assert captured_logs.messages[-1] == '[None] : no context'


def test_log_exception_uses_exception_level(captured_logs):
    log_exception(exceptions.OrderingClosed('Ordering for 2030-01-10 closed'), status_code=400,
                  msg='function = endpoint_create_order')

    record = captured_logs.records[-1]
    assert record.levelno == logging.WARNING
    logged = json.loads(record.getMessage().split(' : ', 1)[1])
    assert logged['exception'] == 'OrderingClosed'
    assert logged['level'] == 'warning'
    assert logged['status_code'] == 400
    assert logged['message'] == 'function = endpoint_create_order'


def test_log_exception_defaults_to_exception_level(captured_logs):
    try:
        raise RuntimeError('boom')
    except RuntimeError as error:
        log_exception(error, status_code=500)

    record = captured_logs.records[-1]
    assert record.levelno == logging.ERROR
    assert record.exc_info is not None


def test_custom_json_encoder():
    dumped = json.dumps({'total': Decimal('99.00'), 'day': date(2030, 1, 10),
                         'at': datetime(2030, 1, 9, 22, 0)}, cls=CustomJSONEncoder)

    assert json.loads(dumped) == {'total': 99.0, 'day': '2030-01-10', 'at': '2030-01-09T22:00:00'}
