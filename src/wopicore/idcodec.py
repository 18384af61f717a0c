'''
idcodec.py

Opaque file identifiers: a bijective, deterministic and URL-safe mapping
between a storage path and the fileid used in the /wopi/files/<fileid> URLs.
No server-side state is kept, the path is always recovered from the fileid.
'''

from base64 import urlsafe_b64encode, b64decode
from binascii import Error as B64Error
import jwt

# convenience references to global entities
log = None
codec = None


class InvalidFileIdError(ValueError):
    '''Raised when a fileid cannot be decoded back to a path'''


class Base64Codec:
    '''Plain URL-safe base64 encoding of the path, without padding'''

    def encode(self, filepath):
        return urlsafe_b64encode(filepath.encode()).decode().rstrip('=')

    def decode(self, fileid):
        try:
            filepath = b64decode((fileid + '=' * (-len(fileid) % 4)).encode(), altchars=b'-_', validate=True).decode()
        except (B64Error, UnicodeDecodeError, ValueError) as e:
            raise InvalidFileIdError(f'Malformed fileid: {e}')
        # only the canonical form is accepted: '+', '/', explicit padding or stray low bits are refused
        if self.encode(filepath) != fileid:
            raise InvalidFileIdError('Malformed fileid: not in canonical form')
        return filepath


class JwtCodec:
    '''Encodes the path as a signed JWT: the result is URL-safe and deterministic
    as no time-dependent claims are included, and tampered fileids are rejected'''

    def __init__(self, secret):
        if not secret:
            raise ValueError('An empty secret is not allowed for the jwt fileid codec')
        self.secret = secret

    def encode(self, filepath):
        return jwt.encode({'p': filepath}, self.secret, algorithm='HS256')

    def decode(self, fileid):
        try:
            return jwt.decode(fileid, self.secret, algorithms=['HS256'])['p']
        except (jwt.exceptions.InvalidTokenError, KeyError) as e:
            raise InvalidFileIdError(f'Invalid fileid: {e}')


def init(inconfig, inlog):
    '''Init module-level variables and select the configured codec'''
    global codec       # pylint: disable=global-statement
    global log         # pylint: disable=global-statement
    log = inlog
    scheme = inconfig.get('security', 'fileidcodec', fallback='jwt').lower()
    if scheme == 'base64':
        codec = Base64Codec()
    elif scheme == 'jwt':
        with open(inconfig.get('security', 'fileidsecretfile')) as s:
            codec = JwtCodec(s.read().strip('\n'))
    else:
        raise ValueError(f'Unsupported fileid codec {scheme}')
    log.info(f'msg="Fileid codec configured" scheme="{scheme}"')


def encode(filepath):
    '''Returns the opaque fileid for the given path'''
    return codec.encode(filepath)


def decode(fileid):
    '''Returns the path for the given opaque fileid, raises InvalidFileIdError if invalid'''
    return codec.decode(fileid)
