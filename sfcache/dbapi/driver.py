"""
Salesforce REST adapter and conversions of Python values to SOQL and JSON

It can run without Django models, only django.conf.settings is used.

The adapter interface used by the upper layers is defined by BaseAdapter.
"""
import datetime
import decimal
import logging

import pytz
import requests
from django.conf import settings
from requests.adapters import HTTPAdapter

import sfcache
from sfcache.auth import auth_for_settings
from sfcache.dbapi import get_max_retries
from sfcache.dbapi.exceptions import (  # NOQA pylint: disable=unused-import
    Error, InterfaceError, DatabaseError, DataError, OperationalError, IntegrityError,
    InternalError, ProgrammingError, NotSupportedError, SalesforceError, BulkLimitError)

log = logging.getLogger(__name__)

# The hard limit of SObject Collections requests (records per request)
BULK_LIMIT = 200

# Datetime format of SOQL literals, always in UTC
SOQL_DATETIME_FORMAT = '%Y-%m-%dT%H:%M:%SZ'

request_count = 0  # global counter


class BaseAdapter(object):
    """
    Interface of the remote execution adapter

    Query methods return the decoded REST response:
        {'totalSize': int, 'done': bool, 'records': [...], 'nextRecordsUrl': str?}
    Bulk methods return {'results': [{'id':.., 'success':.., 'errors': [...]}, ...]}
    and raise BulkLimitError before any request if more than `bulk_limit`
    records are passed.
    """
    bulk_limit = BULK_LIMIT

    def query(self, soql):
        raise NotImplementedError

    def query_all(self, soql):
        raise NotImplementedError

    def next(self, next_records_url):
        raise NotImplementedError

    def describe(self, entity):
        raise NotImplementedError

    def create(self, entity, data):
        raise NotImplementedError

    def update(self, entity, record_id, data):
        raise NotImplementedError

    def delete(self, entity, record_id):
        raise NotImplementedError

    def bulk_create(self, entity, records, all_or_none=False):
        raise NotImplementedError

    def bulk_delete(self, entity, record_ids, all_or_none=False):
        raise NotImplementedError

    def check_bulk_limit(self, operation, items):
        if len(items) > self.bulk_limit:
            raise BulkLimitError(operation, self.bulk_limit, len(items))


class RestAdapter(BaseAdapter):
    """
    Adapter for the Salesforce REST API over a `requests` session

    parameters:
        alias:          important if the authentication should be shared for more thread
        settings_dict:  like settings.SALESFORCE_CONNECTION
    """

    def __init__(self, alias='default', settings_dict=None, _session=None):
        from sfcache.conf import connection_settings
        self.alias = alias
        self.settings_dict = settings_dict if settings_dict is not None else connection_settings()
        self.api_ver = getattr(settings, 'SALESFORCE_API_VERSION', sfcache.API_VERSION)
        self.debug_silent = False
        self._sf_session = _session

    @property
    def sf_session(self):
        if self._sf_session is None:
            self.make_session()
        return self._sf_session

    def make_session(self):
        """Authenticate and get the name of assigned SFDC data server"""
        sf_session = requests.Session()
        sf_session.auth = auth_for_settings(self.alias, self.settings_dict)
        sf_instance_url = sf_session.auth.instance_url
        sf_session.mount(sf_instance_url, HTTPAdapter(max_retries=get_max_retries()))
        self._sf_session = sf_session

    def rest_api_url(self, *url_parts, **kwargs):
        """Join the URL of REST_API

        parameters:
            url_parts:  strings that are joined to the url by "/".
                a REST url like https://na1.salesforce.com/services/data/v52.0/
                is usually added, but not if the first string starts with https://
                or with "/services/" (e.g. nextRecordsUrl)
            api_ver:  API version that should be used instead of connection.api_ver
                default. A special api_ver="" can be used to omit api version
        Examples: self.rest_api_url("query")
                  self.rest_api_url("sobjects", "Contact", id, api_ver="45.0")
                  self.rest_api_url("/services/data/v52.0/query/01gD0000002HU6KIAW-2000")
        Output:

                  https://na1.salesforce.com/services/data/v52.0/query
                  https://na1.salesforce.com/services/data/v45.0/sobjects/Contact/003DD00000000XYAAA
                  https://na1.salesforce.com/services/data/v52.0/query/01gD0000002HU6KIAW-2000
        """
        if url_parts and url_parts[0].startswith('https://'):
            return '/'.join(url_parts)
        base = self.sf_session.auth.instance_url
        if url_parts and url_parts[0].startswith('/services/'):
            return base + '/'.join(url_parts)
        api_ver = kwargs.pop('api_ver', None)
        assert not kwargs
        api_ver = api_ver if api_ver is not None else self.api_ver
        prefix = 'services/data' + ('/v{api_ver}'.format(api_ver=api_ver) if api_ver else '')
        return '/'.join((base, prefix) + url_parts)

    def handle_api_exceptions(self, method, *url_parts, **kwargs):
        """Call REST API and handle exceptions
        Params:
            method:  'HEAD', 'GET', 'POST', 'PATCH' or 'DELETE'
            url_parts: like in rest_api_url() method
            api_ver:   like in rest_api_url() method
            kwargs: other parameters passed to requests.request,
                but the usual important parameters are only
                    params={...}
                    json={...}
        """
        # pylint:disable=too-many-branches
        global request_count  # used only in single thread tests - OK # pylint:disable=global-statement
        assert method in ('HEAD', 'GET', 'POST', 'PATCH', 'DELETE')
        api_ver = kwargs.pop('api_ver', None)
        url = self.rest_api_url(*url_parts, api_ver=api_ver)
        # The 'verify' option is about verifying TLS certificates
        kwargs_in = {'timeout': getattr(settings, 'SALESFORCE_QUERY_TIMEOUT', (4, 15)),
                     'verify': True}
        kwargs_in.update(kwargs)
        log.debug('Request API URL: %s', url)
        request_count += 1
        session = self.sf_session
        response = self._request(session, method, url, kwargs_in)
        if response.status_code == 401:  # Unauthorized
            # Reauthenticate and retry (expired or invalid session ID or OAuth)
            data = response.json()[0]
            if data['errorCode'] == 'INVALID_SESSION_ID':
                session.auth.reauthenticate()
                response = self._request(session, method, url, kwargs_in)

        # status codes help
        # https://developer.salesforce.com/docs/atlas.en-us.api_rest.meta/api_rest/errorcodes.htm
        if response.status_code <= 304:
            # OK (200, 201, 204, 300, 304)
            return response

        # Error (400, 403, 404, 405, 415, 500)
        verbose = not self.debug_silent
        if 'json' not in response.headers.get('Content-Type', ''):
            raise OperationalError("HTTP error code %d: %s" % (response.status_code, response.text))
        # Other Errors are reported in the json body
        data = response.json()[0]
        if response.status_code == 404:  # ResourceNotFound
            if (method == 'DELETE') and data['errorCode'] in ('ENTITY_IS_DELETED',
                                                              'INVALID_CROSS_REFERENCE_KEY'):
                # It is a delete command and the object is in trash bin or
                # completely deleted or it only could be a valid Id for this type
                # then is ignored similarly to delete by a classic database query:
                # DELETE FROM xy WHERE id = 'something_deleted_yet'
                return None
            # if this Id can not be ever valid.
            raise SalesforceError("Couldn't connect to API (404): %s, URL=%s"
                                  % (response.text, url), [data], response, verbose)
        if data['errorCode'] in ('INVALID_FIELD', 'MALFORMED_QUERY', 'INVALID_TYPE'):
            raise ProgrammingError(data['message'], [data], response, verbose)
        elif data['errorCode'] == 'INVALID_FIELD_FOR_INSERT_UPDATE':
            raise DataError(data['message'], [data], response, verbose)
        elif data['errorCode'] == 'METHOD_NOT_ALLOWED':  # 405
            raise SalesforceError('%s: %s %s' % (data['message'], method, url), [data], response, verbose)
        # some kind of failed query
        raise SalesforceError(data.get('message', '%s' % data), [data], response, verbose)

    @staticmethod
    def _request(session, method, url, kwargs_in):
        try:
            return session.request(method, url, **kwargs_in)
        except requests.exceptions.Timeout:
            raise OperationalError("Timeout, URL=%s" % url)
        except requests.exceptions.ConnectionError as exc:
            raise OperationalError("Connection error: %s, URL=%s" % (exc, url))

    # -- adapter interface

    def query(self, soql):
        return self._json(self.handle_api_exceptions('GET', 'query', params={'q': soql}))

    def query_all(self, soql):
        return self._json(self.handle_api_exceptions('GET', 'queryAll', params={'q': soql}))

    def next(self, next_records_url):
        return self._json(self.handle_api_exceptions('GET', next_records_url))

    def describe(self, entity):
        return self._json(self.handle_api_exceptions('GET', 'sobjects', entity, 'describe'))

    def create(self, entity, data):
        response = self.handle_api_exceptions('POST', 'sobjects', entity, json=json_record(data))
        return self._json(response)

    def update(self, entity, record_id, data):
        response = self.handle_api_exceptions('PATCH', 'sobjects', entity, record_id, json=json_record(data))
        return response.status_code == 204

    def delete(self, entity, record_id):
        response = self.handle_api_exceptions('DELETE', 'sobjects', entity, record_id)
        return bool(response and response.status_code == 204)

    def bulk_create(self, entity, records, all_or_none=False):
        self.check_bulk_limit('create', records)
        return self._collections_request('POST', entity, records, all_or_none)

    def bulk_delete(self, entity, record_ids, all_or_none=False):
        self.check_bulk_limit('delete', record_ids)
        if not record_ids:
            return {'results': []}
        response = self.handle_api_exceptions(
            'DELETE', 'composite', 'sobjects',
            params={'ids': ','.join(record_ids), 'allOrNone': str(bool(all_or_none)).lower()})
        return {'results': self._json(response) or []}

    def _collections_request(self, method, entity, records, all_or_none):
        if not records:
            return {'results': []}
        post_data = {
            'allOrNone': bool(all_or_none),
            'records': [merge_dict(json_record(x), type_=entity) for x in records],
        }
        response = self.handle_api_exceptions(method, 'composite', 'sobjects', json=post_data)
        return {'results': self._json(response)}

    @staticmethod
    def _json(response):
        if response is None or not response.text:
            return None
        # parse_float set to decimal.Decimal to avoid precision errors when
        # converting from the json number to a float
        return response.json(parse_float=decimal.Decimal)


def merge_dict(dict_1, *other, **kw):
    """Merge two or more dict including kw into result dict.

    A key "type_" is converted to attributes {"type": ...} for SObject Collections
    """
    tmp = dict_1.copy()
    for x in other:
        tmp.update(x)
    type_ = kw.pop('type_', None)
    tmp.update(kw)
    if type_:
        tmp['attributes'] = {'type': type_}
    return tmp


def json_record(data):
    return {k: arg_to_json(v) for k, v in data.items()}


# ----

# basic conversions


class SoqlLiteral(str):
    """A string that is inserted to SOQL as is, without quoting.

    e.g. a date literal LAST_N_DAYS:30 or a field name
    """


def register_conversion(type_, json_conv, sql_conv=None, subclass=False):
    json_conversions[type_] = json_conv
    sql_conversions[type_] = sql_conv or json_conv
    if subclass and type_ not in subclass_conversions:
        subclass_conversions.append(type_)


def quoted_string_literal(txt):
    """
    SOQL requires single quotes to be escaped.
    http://www.salesforce.com/us/developer/docs/soql_sosl/Content/sforce_api_calls_soql_select_quotedstringescapes.htm
    """
    try:
        return "'%s'" % (txt.replace("\\", "\\\\").replace("'", "\\'"),)
    except AttributeError:
        raise ProgrammingError("Cannot quote %r objects: %r" % (type(txt), txt))


def localized(dat):
    if not dat.tzinfo:
        tz = pytz.timezone(settings.TIME_ZONE or 'UTC')
        dat = tz.localize(dat)
    return dat


def date_literal(dat):
    """Unquoted SOQL datetime literal in UTC, e.g. 2021-03-01T12:00:00Z"""
    return localized(dat).astimezone(pytz.utc).strftime(SOQL_DATETIME_FORMAT)


def json_datetime(dat):
    dat = localized(dat)
    # Format of `%z` is "+HHMM"
    return dat.strftime("%Y-%m-%dT%H:%M:%S.000") + dat.strftime("%z")


def arg_to_soql(arg):
    """
    Perform necessary SOQL quoting on the arg.
    """
    conversion = sql_conversions.get(type(arg))
    if conversion:
        return conversion(arg)
    for type_ in subclass_conversions:
        if isinstance(arg, type_):
            return sql_conversions[type_](arg)
    return sql_conversions[str](arg)


def arg_to_json(arg):
    """
    Perform necessary JSON conversion on the arg.
    """
    conversion = json_conversions.get(type(arg))
    if conversion:
        return conversion(arg)
    for type_ in subclass_conversions:
        if isinstance(arg, type_):
            return json_conversions[type_](arg)
    return json_conversions[str](arg)


# supported types converted from Python to SFDC

# conversion before conversion to json (for Insert and Update commands)
json_conversions = {}

# conversion before formating a SOQL (for Select commands)
sql_conversions = {}

subclass_conversions = []

# pylint:disable=bad-whitespace,no-member
register_conversion(int,               json_conv=lambda o: o,       sql_conv=str)
register_conversion(float,             json_conv=lambda o: o,       sql_conv=lambda o: '%.15g' % o)
register_conversion(type(None),        json_conv=lambda s: None,    sql_conv=lambda s: 'NULL')
register_conversion(str,               json_conv=lambda o: o,       sql_conv=quoted_string_literal)  # default
register_conversion(SoqlLiteral,       json_conv=str,               sql_conv=str)
register_conversion(bool,              json_conv=lambda o: o,       sql_conv=lambda o: 'TRUE' if o else 'FALSE')
register_conversion(datetime.date,     json_conv=lambda d: d.strftime("%Y-%m-%d"))
register_conversion(datetime.datetime, json_conv=json_datetime,     sql_conv=date_literal)
register_conversion(datetime.time,     json_conv=lambda d: d.strftime("%H:%M:%S.%f"))
register_conversion(decimal.Decimal,   json_conv=float,             sql_conv=str, subclass=True)
# pylint:enable=bad-whitespace,no-member
