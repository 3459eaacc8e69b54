"""Mock requests for Salesforce REST API (playback of recorded traffic)

The same query can have different results before and after insert, update,
delete, therefore the expected requests are an ordered list and every request
is compared with the next expected one. (That is why "requests-mock" is not
used.)

Parameters of MockRequest
    request_type: (None, 'application/json',... '*') The type '*' is for
        requests where the type and data should not be checked.
    req:   expected request data (str or None)
    request_json: expected json parameter (dict or list)
    params: expected query string parameters (dict)
    resp:  response text
"""
import json

from django.test import SimpleTestCase

from sfcache.auth import SalesforceAuth
from sfcache.dbapi.driver import RestAdapter

APPLICATION_JSON = 'application/json;charset=UTF-8'

MOCK_INSTANCE_URL = 'mock://'


class MockAuth(SalesforceAuth):
    """Dummy authentication for playback"""
    def authenticate(self):
        return {'access_token': 'mock_token', 'instance_url': MOCK_INSTANCE_URL}


class MockRequestsSession(object):
    """Prepare mock session with expected requests + responses history

    expected:   iterable of MockRequest
    testcase:  testcase object (for consistent assertion)
    """

    def __init__(self, testcase, expected=(), auth=None):
        self.index = 0
        self.testcase = testcase
        self.expected = list(expected)
        self.auth = auth or MockAuth('mock', {})

    def add_expected(self, expected_requests):
        if isinstance(expected_requests, (list, tuple)):
            self.expected.extend(expected_requests)
        else:
            self.expected.append(expected_requests)

    def request(self, method, url, data=None, **kwargs):
        """Assert the request equals the expected, return historical response"""
        msg = "Difference at request index %d (from %d)" % (self.index, len(self.expected))
        self.testcase.assertLess(self.index, len(self.expected), "Unexpected request %s %s" % (method, url))
        expected = self.expected[self.index]
        response = expected.request(method, url, data=data, testcase=self.testcase,
                                    msg=msg, **kwargs)
        self.index += 1
        return response

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)

    def post(self, url, data=None, json=None, **kwargs):
        return self.request('POST', url, data=data, json=json, **kwargs)

    def patch(self, url, data=None, **kwargs):
        return self.request('PATCH', url, data=data, **kwargs)

    def delete(self, url, **kwargs):
        return self.request('DELETE', url, **kwargs)

    def mount(self, prefix, adapter):
        pass


class MockRequest(object):
    """Recorded Mock request to be compared and response to be used

    for some unit tests offline
    If the parameter 'request_type' is '*' then the request is not tested
    """
    default_type = None

    def __init__(self, method, url,
                 req=None, resp=None,
                 request_json=None, params=None,
                 request_type=None, response_type=None,
                 status_code=200):
        self.method = method
        self.url = url
        self.request_data = req
        self.response_data = resp
        self.request_json = request_json
        self.params = params
        self.request_type = request_type or (self.default_type if method not in ('GET', 'DELETE') else '') or ''
        self.response_type = response_type
        self.status_code = status_code

    def request(self, method, url, data=None, testcase=None, **kwargs):
        """Compare the request to the expected. Return the expected response."""
        if testcase is None:
            raise TypeError("Required keyword argument 'testcase' not found")
        msg = kwargs.pop('msg', None)
        testcase.assertEqual(method.upper(), self.method.upper(), msg=msg)
        testcase.assertEqual(url, self.url, msg=msg)
        if self.request_type != '*':
            testcase.assertEqual(kwargs.pop('params', None), self.params, msg=msg)
            testcase.assertEqual(kwargs.pop('json', None), self.request_json, msg=msg)
            if 'json' in self.request_type and data is not None:
                testcase.assertJSONEqual(data, self.request_data, msg=msg)
            else:
                testcase.assertEqual(data, self.request_data, msg=msg)
        if self.response_data and self.default_type == APPLICATION_JSON:
            response_class = MockJsonResponse
        else:
            response_class = MockResponse
        return response_class(self.response_data,
                              status_code=self.status_code,
                              resp_content_type=self.response_type)


class MockJsonRequest(MockRequest):
    """Mock JSON request/response for some unit tests offline"""
    default_type = APPLICATION_JSON


class MockResponse(object):
    """Mock response for some unit tests offline"""
    default_type = None

    def __init__(self, text, resp_content_type=None, status_code=200):
        self.text = text or ''
        self.status_code = status_code
        self.content_type = resp_content_type if resp_content_type is not None else self.default_type

    def json(self, parse_float=None):
        return json.loads(self.text, parse_float=parse_float)

    @property
    def headers(self):
        return {'Content-Type': self.content_type} if self.content_type else {}


class MockJsonResponse(MockResponse):
    default_type = APPLICATION_JSON


class MockTestCase(SimpleTestCase):
    """
    Test case with a RestAdapter that uses recorded requests/responses instead of network
    """
    def setUp(self):
        super(MockTestCase, self).setUp()
        self.mock_session = MockRequestsSession(testcase=self)
        self.adapter = RestAdapter(alias='mock', settings_dict={}, _session=self.mock_session)

    def tearDown(self):
        self.assertEqual(self.mock_session.index, len(self.mock_session.expected),
                         "Not all expected requests has been used")
        super(MockTestCase, self).tearDown()

    def mock_add_expected(self, expected_requests):
        self.mock_session.add_expected(expected_requests)
