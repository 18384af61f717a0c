#!/usr/bin/env python3
'''
wopiadapter.py

A Web-application Open Platform Interface (WOPI) adapter exposing the files
of a virtual filesystem (VFS) to a browser-based office suite
'''

import sys
import os
import socket
import configparser
from platform import python_version
import logging
import http.client
try:
    import flask                   # Flask app server
    from werkzeug.exceptions import NotFound as Flask_NotFound
    from werkzeug.exceptions import MethodNotAllowed as Flask_MethodNotAllowed
    from prometheus_flask_exporter import PrometheusMetrics    # Prometheus support
except ImportError:
    print("Missing modules, please install dependencies with `pip3 install .`")
    raise

import wopicore.wopi
import wopicore.wopiutils as utils
import wopicore.discovery as discovery
import wopicore.idcodec as idcodec
import wopicore.storagetier as tiers


# the following constant is replaced on the fly when generating the docker image
WOPIADAPTERVERSION = 'git'

# the configuration file, unless overridden by the WOPIADAPTER_CONFIG env variable
CONFIGFILE = '/etc/wopi/wopiadapter.conf'

# built-in defaults, see the README for the description of each option
DEFAULTCONFIG = {
    'general': {
        'port': '8880',
        'loglevel': 'Info',
        'loghandler': 'file',
        'logdest': '/var/log/wopi/wopiadapter.log',
        'internalserver': 'flask',
        'discoverymimetype': 'text/plain',
        'discoverytimeout': '10',
        'vfstype': 'local',
        'userheader': 'X-Remote-User',
        'useridheader': 'X-Remote-UserId',
    },
    'security': {
        'usehttps': 'no',
        'sslverify': 'True',
        'fileidcodec': 'jwt',
        'fileidsecretfile': '/etc/wopi/fileidsecret',
        'placeholdertoken': 'test',
    },
    'io': {
        'chunksize': '4194304',
        'vfsstreamprefix': 'myMonster',
    },
    'local': {
        'storagehomepath': '/var/wopi/storage',
    },
}

# alias of the VFS module, see function below
storage = None


def storage_layer_import(vfstype):
    '''A convenience function to import the VFS module specified in the config and make it globally available'''
    global storage        # pylint: disable=global-statement
    if vfstype in ['local']:
        vfstype += 'vfs'
    else:
        raise ImportError(f'Unsupported/Unknown VFS type {vfstype}')
    try:
        storage = __import__('wopicore.' + vfstype, globals(), locals(), [vfstype])
    except ImportError:
        print(f'Missing module when attempting to import {vfstype}.py. Please make sure dependencies are met.')
        raise


class WopiAdapter:
    '''A singleton container for all state information of the WOPI adapter'''
    app = flask.Flask("wopiadapter")
    metrics = PrometheusMetrics(app, group_by='endpoint')
    port = 0
    loglevels = {"Critical": logging.CRITICAL,  # 50
                 "Error":    logging.ERROR,     # 40
                 "Warning":  logging.WARNING,   # 30
                 "Info":     logging.INFO,      # 20
                 "Debug":    logging.DEBUG      # 10
                 }
    log = utils.JsonLogger(app.logger)
    config = None
    useHttps = False

    @classmethod
    def init(cls, configfile=None):
        '''Initialises the application, bails out in case of failures. Note this is not a __init__ method'''
        try:
            # detect hostname, or take it from the environment if set e.g. by docker
            hostname = os.environ.get('HOST_HOSTNAME')
            if not hostname:
                hostname = socket.gethostname()
            # read the configuration
            cls.config = configparser.ConfigParser()
            cls.config.read_dict(DEFAULTCONFIG)
            cls.config.read(configfile or os.environ.get('WOPIADAPTER_CONFIG', CONFIGFILE))
            # configure the logging
            lhandler = cls.config.get('general', 'loghandler').lower()
            if lhandler == 'stream':
                logdest = cls.config.get('general', 'logdest', fallback='stdout').lower()
                loghandler = logging.StreamHandler(sys.stdout if logdest == 'stdout' else sys.stderr)
            else:
                loghandler = logging.FileHandler(cls.config.get('general', 'logdest'))
            loghandler.setFormatter(logging.Formatter(
                fmt='{"time": "%(asctime)s.%(msecs)03d", "host": "'
                + hostname + '", "level": "%(levelname)s", "process": "%(name)s", %(message)s}',
                datefmt='%Y-%m-%dT%H:%M:%S'))
            if cls.config.get('general', 'internalserver') == 'waitress':
                cls.log.logger.handlers.clear()
                logging.getLogger().handlers = [loghandler]
            else:
                cls.app.logger.handlers = [loghandler]
            cls.log.setLevel(cls.loglevels[cls.config.get('general', 'loglevel')])
            # load and initialize the requested VFS
            storage_layer_import(cls.config.get('general', 'vfstype'))
            storage.init(cls.config, cls.log)
            cls.port = cls.config.getint('general', 'port')
            cls.useHttps = cls.config.get('security', 'usehttps').lower() == 'yes'
            # validate the certificates exist if running in https mode
            if cls.useHttps:
                try:
                    with open(cls.config.get('security', 'wopicert')) as _:
                        pass
                    with open(cls.config.get('security', 'wopikey')) as _:
                        pass
                except (OSError, configparser.NoOptionError):
                    cls.log.error('msg="Failed to open the provided certificate or key to start in https mode"')
                    raise
            cls.officeurl = cls.config.get('general', 'officeurl')
            cls.mimetype = cls.config.get('general', 'discoverymimetype')
            _ = cls.config.getfloat('general', 'discoverytimeout')   # make sure this is defined as a number
            idcodec.init(cls.config, cls.log)
            # initialize the submodules
            utils.srv = wopicore.wopi.srv = cls
            utils.log = wopicore.wopi.log = discovery.log = tiers.log = cls.log
            wopicore.wopi.st = tiers.st = storage
            discovery.config = cls.config
        except (configparser.NoOptionError, configparser.NoSectionError, KeyError, OSError, ValueError) as e:
            # any error we get here with the configuration is fatal
            cls.log.fatal(f'msg="Failed to initialize the service, aborting" error="{e}"')
            print(f'Failed to initialize the service: {e}\n', file=sys.stderr)
            raise

    @classmethod
    def run(cls):
        '''Runs the Flask app in either standalone (https) or embedded (http) mode'''
        cls.app.debug = cls.config.get('general', 'loglevel') == 'Debug'
        cls.app.threaded = True

        if cls.useHttps:
            cls.app.ssl_context = (cls.config.get('security', 'wopicert'), cls.config.get('security', 'wopikey'))
            cls.log.info('msg="WOPI Adapter starting in standalone secure mode" port="%d" version="%s"' %
                         (cls.port, WOPIADAPTERVERSION))
        else:
            cls.app.ssl_context = None
            cls.log.info('msg="WOPI Adapter starting in unsecure/embedded mode" port="%d" version="%s"' %
                         (cls.port, WOPIADAPTERVERSION))

        try:
            if cls.config.get('general', 'internalserver') == 'waitress':
                try:
                    from waitress import serve
                except ImportError:
                    cls.log.fatal('msg="Failed to initialize the service, aborting" error="missing module waitress"')
                    print("Missing module waitress, aborting")
                    raise

                serve(cls.app, host='0.0.0.0', port=cls.port)
            else:
                cls.app.run(host='0.0.0.0', port=cls.port, ssl_context=cls.app.ssl_context)
        except OSError as e:
            cls.log.fatal(f'msg="Failed to run the service, aborting" error="{e}"')
            raise


@WopiAdapter.app.errorhandler(Exception)
def handleException(ex):
    '''Generic method to log any uncaught exception'''
    if isinstance(ex, (Flask_NotFound, Flask_MethodNotAllowed)):
        return ex
    return utils.logGeneralExceptionAndReturn(ex, flask.request)


@WopiAdapter.app.route("/", methods=['GET'])
def redir():
    '''A simple redirect to the page below'''
    return flask.redirect("/wopi")


@WopiAdapter.app.route("/wopi", methods=['GET'])
def index():
    '''Return a default index page with some user-friendly information about this service'''
    WopiAdapter.log.debug(f'msg="Accessed index page" client="{flask.request.remote_addr}"')
    resp = flask.Response("""
      <html><head><title>WOPI Adapter</title></head>
      <body>
      <div align="center" style="color:#000080; padding-top:50px; font-family:Verdana; size:11">
      This is a WOPI adapter exposing a virtual filesystem to online office-like editors.<br>
      To use this service, please open a supported document from your file manager.</div>
      <div style="position: absolute; bottom: 10px; left: 10px; width: 99%%;"><hr>
      <i>WOPI Adapter %s at %s. Powered by Flask %s for Python %s.
         VFS type: <span style="font-family:monospace">%s</span>.
         Health status: <span style="font-family:monospace">%s</span>.</i>
      </body>
      </html>
      """ % (WOPIADAPTERVERSION, socket.getfqdn(), flask.__version__, python_version(),
             WopiAdapter.config.get('general', 'vfstype'), storage.healthcheck()))
    resp.headers['X-Frame-Options'] = 'sameorigin'
    resp.headers['X-XSS-Protection'] = '1; mode=block'
    return resp


#
# Discovery
#
@WopiAdapter.app.route("/wopi/discovery", methods=['GET'])
@WopiAdapter.metrics.counter('discovery_requests', 'Number of /wopi/discovery calls by result',
                             labels={'status': lambda r: r.status_code})
def wopiDiscovery():
    '''Resolves the editor URL for the configured MIME type and the fileid of the given file.
    Request arguments:
    - string id: the path of the file to be opened

    Returns: a JSON response as follows:
    {
      "url" : "<URL of the editor action>",
      "token" : "<access token>",
      "fileId" : "<opaque fileid>"
    }
    or a message and a 4xx/5xx HTTP code in case of errors
    '''
    req = flask.request
    filepath = req.args.get('id', '')
    if not filepath:
        WopiAdapter.log.warning(f'msg="Discovery: id must be provided" client="{req.remote_addr}"')
        return 'Missing id argument', http.client.BAD_REQUEST
    try:
        res = discovery.discover(WopiAdapter.officeurl, filepath, WopiAdapter.mimetype)
    except discovery.DiscoveryError as e:
        WopiAdapter.log.info(f'msg="Discovery failed" client="{req.remote_addr}" status="{e.statuscode}" reason="{e.msg}"')
        return e.msg, e.statuscode
    return utils.createJsonResponse(res)


#
# WOPI protocol implementation
#
@WopiAdapter.app.route("/wopi/files/<fileid>", methods=['GET'])
def wopiCheckFileInfo(fileid):
    '''The CheckFileInfo WOPI call'''
    return wopicore.wopi.checkFileInfo(fileid, utils.getUserInfo(flask.request))


@WopiAdapter.app.route("/wopi/files/<fileid>/contents", methods=['GET'])
def wopiGetFile(fileid):
    '''The GetFile WOPI call'''
    return wopicore.wopi.getFile(fileid, utils.getUserInfo(flask.request))


@WopiAdapter.app.route("/wopi/files/<fileid>/contents", methods=['POST'])
def wopiPutFile(fileid):
    '''The PutFile WOPI call'''
    return wopicore.wopi.putFile(fileid, utils.getUserInfo(flask.request))


#
# Start the app endless listening loop
#
if __name__ == '__main__':
    WopiAdapter.init()
    WopiAdapter.run()
