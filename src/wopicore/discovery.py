'''
discovery.py

Helper code for the WOPI discovery phase: fetches the discovery manifest
from the office-suite host and resolves the editor action URL for a MIME type.
'''

from xml.etree import ElementTree as ET
import http.client
import requests
import wopicore.idcodec as idcodec

# convenience references to global entities
config = None
log = None

# the manifest path on the office-suite host
DISCOVERYPATH = '/hosting/discovery'


class DiscoveryError(Exception):
    '''Base class for the discovery failures, carrying the arguments for an HTTP Response'''

    def __init__(self, msg, statuscode=http.client.NOT_FOUND):
        super().__init__()
        self.msg = msg
        self.statuscode = statuscode
        self.args = (msg, statuscode)


class UpstreamTransportError(DiscoveryError):
    '''Network failure talking to the discovery host'''


class UpstreamProtocolError(DiscoveryError):
    '''Non-200 status or truncated body from the discovery host'''


class InvalidManifestError(DiscoveryError):
    '''The discovery body is not valid XML'''


class UnsupportedMimeTypeError(DiscoveryError):
    '''The manifest does not register exactly one action for the MIME type'''


def fetchmanifest(officeurl, timeout=None, verify=True):
    '''Fetches the whole discovery manifest from the given office-suite host and returns the raw body'''
    try:
        discReq = requests.get(officeurl.rstrip('/') + DISCOVERYPATH, timeout=timeout, verify=verify)
        # accessing the content forces the full body to be read
        body = discReq.content
    except requests.exceptions.ChunkedEncodingError as e:
        log.error(f'msg="Truncated discovery response" officeurl="{officeurl}" error="{e}"')
        raise UpstreamProtocolError('Not able to retrieve the discovery.xml file from the office server '
                                    'with the submitted address')
    except requests.exceptions.RequestException as e:
        log.error(f'msg="Failed to probe the office server" officeurl="{officeurl}" error="{e}"')
        raise UpstreamTransportError(f'Request error: {e}')
    if discReq.status_code != http.client.OK:
        log.error('msg="Discovery request failed" officeurl="%s" status="%d"' % (officeurl, discReq.status_code))
        raise UpstreamProtocolError(f'Request failed. Status code: {discReq.status_code}', discReq.status_code)
    return body


def findaction(body, mimetype):
    '''Parses the manifest and returns the urlsrc of the single action registered for mimetype'''
    try:
        discXml = ET.fromstring(body)
    except ET.ParseError as e:
        log.error(f'msg="Invalid discovery manifest" error="{e}"')
        raise InvalidManifestError('The retrieved discovery.xml file is not a valid XML file')
    # equivalent of /wopi-discovery/net-zone/app[@name=mimetype]/action
    nodes = []
    if discXml.tag == 'wopi-discovery':
        nodes = [a for app in discXml.findall('net-zone/app') if app.get('name') == mimetype
                 for a in app.findall('action')]
    if len(nodes) != 1:
        log.warning('msg="Requested mime type not handled" mimetype="%s" matches="%d"' % (mimetype, len(nodes)))
        raise UnsupportedMimeTypeError('The requested mime type is not handled')
    urlsrc = nodes[0].get('urlsrc')
    if not urlsrc:
        log.warning(f'msg="Action without urlsrc in discovery manifest" mimetype="{mimetype}"')
        raise UnsupportedMimeTypeError('The requested mime type is not handled')
    return urlsrc


def discover(officeurl, filepath, mimetype='text/plain'):
    '''Resolves the editor URL for the given MIME type and the fileid for the given filepath.
    Returns a dict {url, token, fileId} or raises a DiscoveryError.'''
    body = fetchmanifest(officeurl, timeout=config.getfloat('general', 'discoverytimeout', fallback=10),
                         verify=config.get('security', 'sslverify', fallback='True').upper() == 'TRUE')
    url = findaction(body, mimetype)
    fileid = idcodec.encode(filepath)
    log.info(f'msg="Discovery completed" officeurl="{officeurl}" mimetype="{mimetype}" url="{url}" filepath="{filepath}"')
    return {
        'url': url,
        # TODO replace with a real access token once token issuance and validation are implemented
        'token': config.get('security', 'placeholdertoken', fallback='test'),
        'fileId': fileid,
    }
