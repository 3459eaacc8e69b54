# django-salesforce-cache
#
# by Phil Christensen
# (c) 2012-2013 Freelancers Union (http://www.freelancersunion.org)
# See LICENSE.md for details
#

"""
oauth login support for the Salesforce API
"""

import base64
import hashlib
import hmac
import logging
import threading

import requests
from requests.adapters import HTTPAdapter
from requests.auth import AuthBase

from sfcache.dbapi import get_max_retries
from sfcache.dbapi.exceptions import AuthenticationError, OperationalError

log = logging.getLogger(__name__)

oauth_lock = threading.Lock()
# The static "oauth_data" is useful for efficient static authentication with
# multithread server. Keys are connection aliases.
oauth_data = {}


class SalesforceAuth(AuthBase):
    """
    Authentication object that encapsulates all auth settings and holds the auth token.

    required public methods:
        __init__(alias, settings_dict, _session)
        authenticate():     ask for a new token (customizable method)
        del_token():        forget token
    private:
        get_auth():         get a token and url saved here or ask for a new
        reauthenticate():   force to ask for a new token if allowed
                            (used after expired token error)
    callback for requests:
        __call__(r)

    http://docs.python-requests.org/en/latest/user/advanced/#custom-authentication
    """

    def __init__(self, alias, settings_dict, _session=None):
        """
        Set values for authentication
            Params:
                alias:  The connection alias e.g. 'default'.
                settings_dict: usually settings.SALESFORCE_CONNECTION
                _session: only for tests
        """
        self.alias = alias
        self.settings_dict = settings_dict
        self._session = _session or requests.Session()

    def authenticate(self):
        """
        Authenticate to the Salesforce API with the provided credentials.

        This function will be called only if it is not in the cache.
        """
        raise NotImplementedError("The authenticate method should be subclassed.")

    def get_auth(self):
        """
        Cached value of authenticate()
        """
        with oauth_lock:
            if self.alias not in oauth_data:
                oauth_data[self.alias] = self.authenticate()
            return oauth_data[self.alias]

    def del_token(self):
        with oauth_lock:
            oauth_data.pop(self.alias, None)

    def __call__(self, r):
        """Standard auth hook on the "requests" request r"""
        access_token = str(self.get_auth()['access_token'])
        r.headers['Authorization'] = 'OAuth %s' % access_token
        return r

    def reauthenticate(self):
        self.del_token()
        return str(self.get_auth()['access_token'])

    @property
    def instance_url(self):
        return self.get_auth()['instance_url']


class SalesforcePasswordAuth(SalesforceAuth):
    """
    Attaches OAuth 2 Salesforce Password authentication to the `requests` Session

    Static auth data are cached thread safe between threads.
    """
    def authenticate(self):
        """
        Authenticate to the Salesforce API with the provided credentials (password).
        """
        settings_dict = self.settings_dict
        url = ''.join([settings_dict['HOST'], '/services/oauth2/token'])

        log.info("attempting authentication to %s", settings_dict['HOST'])
        self._session.mount(settings_dict['HOST'], HTTPAdapter(max_retries=get_max_retries()))
        try:
            response = self._session.post(url, data=dict(
                grant_type='password',
                client_id=settings_dict['CONSUMER_KEY'],
                client_secret=settings_dict['CONSUMER_SECRET'],
                username=settings_dict['USER'],
                password=settings_dict['PASSWORD'],
            ))
        except requests.exceptions.RequestException as exc:
            raise OperationalError("Authentication request to %s failed: %s" % (url, exc))
        if response.status_code != 200:
            raise AuthenticationError("oauth failed: %s: %s" % (settings_dict['USER'], response.text))
        response_data = response.json()
        # Verify signature (not important for this auth mechanism)
        calc_signature = (base64.b64encode(hmac.new(
            key=settings_dict['CONSUMER_SECRET'].encode('ascii'),
            msg=(response_data['id'] + response_data['issued_at']).encode('ascii'),
            digestmod=hashlib.sha256).digest())).decode('ascii')
        if calc_signature != response_data['signature']:
            raise AuthenticationError('Invalid auth signature received')
        log.info("successfully authenticated %s", settings_dict['USER'])
        return response_data


class StaticTokenAuth(SalesforceAuth):
    """
    Auth with a token obtained outside of this application

    settings_dict: {'ACCESS_TOKEN': ..., 'INSTANCE_URL': ...}
    An expired token can not be renewed.
    """
    def authenticate(self):
        try:
            return {'access_token': self.settings_dict['ACCESS_TOKEN'],
                    'instance_url': self.settings_dict['INSTANCE_URL']}
        except KeyError as exc:
            raise AuthenticationError("Missing %s in the connection settings" % exc)

    def reauthenticate(self):
        raise AuthenticationError("A static access token can never reauthenticate.")


def auth_for_settings(alias, settings_dict, _session=None):
    """Select the auth class by settings: AUTH (dotted path) or by present keys"""
    auth_class = settings_dict.get('AUTH')
    if auth_class:
        from django.utils.module_loading import import_string
        auth_class = import_string(auth_class)
    elif 'ACCESS_TOKEN' in settings_dict:
        auth_class = StaticTokenAuth
    else:
        auth_class = SalesforcePasswordAuth
    return auth_class(alias, settings_dict=settings_dict, _session=_session)
