'''
wopiutils.py

General low-level functions to support the WOPI adapter.
'''

import sys
import traceback
import json
import http.client
from urllib.parse import urlparse
import flask
import wopicore.commoniface as common

# header used by reverse proxies such as traefik to pass the real remote IP address
REALIPHEADER = 'X-Real-IP'

# convenience references to global entities
srv = None
log = None


class JsonLogger:
    '''A wrapper class in front of a logger, based on the facade pattern.
    All logs are expected in the `msg="..." key="value" ...` format, and are turned into JSON objects.'''
    def __init__(self, logger):
        '''Initialization'''
        self.logger = logger

    @staticmethod
    def _tojson(module, payload):
        '''Converts a `key="value" ...` payload into the inner part of a JSON object'''
        try:
            # the added trailing space matches the `" ` split, so we remove the last element of that list;
            # this assumes no `="` nor `" ` is present inside any key or value
            payload = dict([tuple(kv.split('="')) for kv in f'module="{module}" {payload} '.split('" ')[:-1]])
            return json.dumps(payload)[1:-1]
        except ValueError:
            # if the above assumptions do not hold, just json-escape the original log
            return f'"module": "{module}", "payload": {json.dumps(str(payload))}'

    def __getattr__(self, name):
        '''Facade method'''
        def facade(*args, **kwargs):
            '''internal method returned by __getattr__ and wrapping the original one'''
            if not hasattr(self.logger, name):
                raise NotImplementedError
            if name in ['debug', 'info', 'warning', 'error', 'critical', 'fatal'] and args:
                # resolve the calling module
                f = traceback.extract_stack()[-2].filename
                m = f[f.rfind('/') + 1:f.rfind('.')]
                if m == '__init__':
                    # take 'module' out of '/path/to/module/__init__.py'
                    f = f[:f.rfind('/')]
                    m = f[f.rfind('/') + 1:]
                args = (self._tojson(m, args[0]),) + args[1:]
            # pass-through facade
            return getattr(self.logger, name)(*args, **kwargs)
        return facade


def logGeneralExceptionAndReturn(ex, req):
    '''Convenience function to log a stack trace and return HTTP 500'''
    ex_type, ex_value, ex_traceback = sys.exc_info()
    log.critical('msg="Unexpected exception caught" exception="%s" type="%s" traceback="%s" client="%s" requestedUrl="%s"' %
                 (ex, ex_type, traceback.format_exception(ex_type, ex_value, ex_traceback),
                  req.headers.get(REALIPHEADER, req.remote_addr), req.url))
    return 'Internal error, please contact support', http.client.INTERNAL_SERVER_ERROR


def getUserInfo(req):
    '''Resolves the identity on behalf of which the request is served. The identity is expected to be
    set by the fronting server in the configured headers, as authentication is not performed here.'''
    username = req.headers.get(srv.config.get('general', 'userheader'), '')
    userid = req.headers.get(srv.config.get('general', 'useridheader'), username)
    return common.UserInfo(username, userid)


def getPostMessageOrigin(req):
    '''Returns the configured PostMessageOrigin, defaulting to the origin of the given request'''
    origin = srv.config.get('general', 'postmessageorigin', fallback='')
    if origin:
        return origin
    host = urlparse(req.host_url)
    return host.scheme + '://' + host.netloc


def createJsonResponse(response_body, status_code=http.client.OK, headers=None):
    '''Creates a Flask response object with a JSON-encoded body, the given status code
    and the specified headers'''
    headers = headers or {}
    headers['Content-Type'] = 'application/json'
    return flask.Response(response=json.dumps(response_body), status=status_code, headers=headers)
