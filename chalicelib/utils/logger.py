import json
import os
from copy import deepcopy
from datetime import date
from decimal import Decimal
from logging import Formatter, Logger, NOTSET, StreamHandler, getLogger, setLoggerClass

from chalice.app import Request

LOGGER_NAME = 'hostel_food_ordering'
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
EXCEPTION_LOG_LEVELS = ('debug', 'info', 'warning', 'error', 'exception')


class RequestIdLogger(Logger):
    """ Every message is prefixed with the id of the request being handled: "[<request id>] : <msg>" """

    def __init__(self, name, level=NOTSET):
        super().__init__(name, level)
        self.current_request_id = None

    def _log(self, level, msg, args, **kwargs):
        super()._log(level, f'[{self.current_request_id}] : {msg}', args, **kwargs)


def conf_logger(level):
    setLoggerClass(RequestIdLogger)
    logger_ = getLogger(LOGGER_NAME)
    setLoggerClass(Logger)
    handler = StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(Formatter(LOG_FORMAT))
    logger_.handlers = [handler]
    logger_.setLevel(level)
    return logger_


logger = conf_logger(os.environ.get('LOG_LEVEL', 'DEBUG').upper())


def set_request_id(request: Request):
    lambda_context = getattr(request, 'lambda_context', None)
    aws_request_id = getattr(lambda_context, 'aws_request_id', None) or ''
    logger.current_request_id = aws_request_id.split('-')[-1] or None


def log_request(request: Request):
    request_dict = deepcopy(request.to_dict())
    headers = request_dict.get('headers') or {}
    headers.pop('authorization', None)
    logger.info(f"Request: {json.dumps(request_dict, cls=CustomJSONEncoder)}")
    if headers.get('content-type') == 'application/json':
        logger.debug(f"Request body: {request.raw_body}")


class CustomJSONEncoder(json.JSONEncoder):
    def default(self, value):
        # datetime is a date as well
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        return super().default(value)


def log_exception(error: Exception, status_code: int = 400, msg: str = "", *args, **kwargs):
    """ Logs the error as a JSON document, at the LEVEL declared by the exception class (default: exception) """
    level = getattr(error, 'LEVEL', 'exception')
    if level not in EXCEPTION_LOG_LEVELS:
        level = 'exception'
    getattr(logger, level)(json.dumps({
        'error': str(error),
        'exception': error.__class__.__name__,
        'message': str(msg),
        'level': level,
        'status_code': status_code,
        'args': args,
        'kwargs': kwargs
    }, cls=CustomJSONEncoder))
