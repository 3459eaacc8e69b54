# All error types described in DB API 2 are implemented the same way as in
# Django, otherwise some exceptions are not correctly reported in it.
from . import log
# pylint:disable=too-few-public-methods


class Error(Exception):
    pass


class InterfaceError(Error):
    pass  # should be raised directly


class BulkLimitError(InterfaceError):
    """Too many records for one SObject Collections request (raised before the request)"""
    def __init__(self, operation, limit, count):
        super(BulkLimitError, self).__init__(
            "Bulk {} is limited to {} records per request. Got {} records.".format(operation, limit, count))
        self.operation = operation
        self.limit = limit
        self.count = count


class DatabaseError(Error):
    pass


class SalesforceError(DatabaseError):
    """
    DatabaseError that usually gets detailed error information from SF response

    in the second parameter, decoded from REST, that frequently need not to be
    displayed.
    The attribute `operation` ('query', 'create', 'update', 'delete'...) is set
    by the upper layer when the error is re-raised with the operation context.
    """
    def __init__(self, message='', data=None, response=None, verbose=False, operation=None):
        if data:
            data_0 = data[0]
            separ = ' '
            if '\n' in message:
                separ = '\n  '
                message = message.replace('\n', separ)
            if 'errorCode' in data_0:
                subreq = ''
                if 'referenceId' in data_0:
                    subreq = " (in subrequest '{}')".format(data_0['referenceId'])
                message = data_0['errorCode'] + subreq + separ + message
            if 'fields' in data_0:
                message += separ + 'FIELDS: {}'.format(data_0['fields'])
        DatabaseError.__init__(self, message)
        self.data = data
        self.response = response
        self.verbose = verbose
        self.operation = operation
        if verbose:
            log.info("Error (debug details) %s\n%s", response.text,
                     response.__dict__)


class DataError(SalesforceError):
    pass


class OperationalError(SalesforceError):
    pass  # e.g. network, auth


class AuthenticationError(OperationalError):
    pass


class IntegrityError(SalesforceError):
    pass  # e.g. foreign key


class InternalError(SalesforceError):
    pass


class ProgrammingError(SalesforceError):
    pass  # e.g sql syntax, invalid query tree


class NotSupportedError(SalesforceError):
    pass
