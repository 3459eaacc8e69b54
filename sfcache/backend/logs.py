"""
Logging of errors of remote operations

    SALESFORCE_LOGGING_CHANNEL  - logger name, None: this package, False: no logging
    SALESFORCE_LOG_LEVEL        - default level name, 'error'
    SALESFORCE_THROW_EXCEPTIONS - re-raise after logging (default settings.DEBUG)
"""
import logging

from sfcache import conf
from sfcache.dbapi.exceptions import SalesforceError

log = logging.getLogger('sfcache')


def get_logger():
    channel = conf.logging_channel()
    if channel is False:
        return None
    return logging.getLogger(channel) if channel else log


def log_salesforce_error(message, context=None, level=None):
    logger = get_logger()
    if logger is None:
        return
    level_name = (level or conf.log_level() or 'error').upper()
    levelno = logging.getLevelName(level_name)
    if not isinstance(levelno, int):
        levelno = logging.ERROR
    logger.log(levelno, "%s %s", message, context or {})


def handle_salesforce_exception(exc, operation):
    """Log an error of `operation` and re-raise it if SALESFORCE_THROW_EXCEPTIONS.

    The re-raised error is a SalesforceError with the `operation` attribute,
    the original exception is its __cause__.
    """
    log_salesforce_error("Salesforce %s failed" % operation, {
        'operation': operation,
        'exception': type(exc).__name__,
        'message': str(exc),
    })
    if conf.throw_exceptions():
        if isinstance(exc, SalesforceError):
            exc.operation = exc.operation or operation
            raise exc
        raise SalesforceError("Salesforce %s failed: %s" % (operation, exc), operation=operation) from exc
