'''
commoniface.py

Common entities shared by the WOPI handlers and the VFS implementations:
the user identity, the stat/metadata contract and the storage error taxonomy.
'''

from collections import namedtuple
from enum import Enum
from requests.structures import CaseInsensitiveDict


# standard file missing message
ENOENT_MSG = 'No such file or directory'

# standard error thrown when attempting an operation without the required access rights
ACCESS_ERROR = 'Operation not permitted'

# version of the metadata contract produced by the FileInfo provider
METADATA_VERSION = 1


# the identity on behalf of which every VFS call is made, supplied per request
UserInfo = namedtuple('UserInfo', ['username', 'id'])


class StorageError(IOError):
    '''Raised by a VFS when an operation fails'''


class MissingBodyError(ValueError):
    '''Raised when a PutFile request carries no content'''


class StatOutcome(Enum):
    '''How a metadata-only lookup ended'''
    # the VFS returned a size
    FOUND = 'found'
    # the VFS does not implement stat
    UNSUPPORTED = 'unsupported'
    # the VFS returned metadata without a size
    NOSIZE = 'nosize'
    # the VFS failed to stat the file
    FAILED = 'failed'


class StatResult:
    '''The result of a metadata-only lookup against the VFS'''

    def __init__(self, outcome, size=None, reason=None):
        self.outcome = outcome
        self.size = size
        self.reason = reason

    @property
    def hassize(self):
        return self.outcome == StatOutcome.FOUND

    def __repr__(self):
        return f'StatResult({self.outcome.value}, size={self.size}, reason={self.reason})'


class FileMetadata:
    '''Metadata of a file as exposed to WOPI clients. `size` is None when neither
    stat nor the read fallback could tell the file size.'''
    version = METADATA_VERSION

    def __init__(self, name, size, user, postmessageorigin=None):
        self.name = name
        self.size = size
        self.user = user
        self.postmessageorigin = postmessageorigin

    def todict(self):
        '''Returns the CheckFileInfo payload'''
        fmd = {
            'BaseFileName': self.name,
            'Size': self.size,
            'UserId': self.user.id,
            'OwnerId': self.user.username,
            # capability negotiation is not modelled
            'UserCanWrite': True,
            'SupportsUpdate': True,
        }
        if self.postmessageorigin:
            fmd['PostMessageOrigin'] = self.postmessageorigin
        return fmd


class ReadResponse:
    '''What a VFS returns on readfile: response headers and an iterator over the content chunks.
    As with a generator, a chunk may be an IOError instance to report a failure.'''

    def __init__(self, chunks, headers=None):
        self.chunks = chunks
        self.headers = CaseInsensitiveDict(headers or {})

    def __iter__(self):
        return iter(self.chunks)

    @property
    def contentlength(self):
        '''The Content-Length header as an int, or None if missing or malformed'''
        try:
            return int(self.headers['Content-Length'])
        except (KeyError, TypeError, ValueError):
            return None


def statsize(vfs, filepath, user):
    '''Performs a metadata-only lookup and classifies the result, so that callers
    can pick a fallback without relying on exceptions'''
    try:
        statinfo = vfs.stat(filepath, user)
    except NotImplementedError:
        return StatResult(StatOutcome.UNSUPPORTED, reason='stat not supported')
    except Exception as e:      # pylint: disable=broad-except
        # any other failure of the backend is treated as a failed lookup, the caller still tries to read the file
        return StatResult(StatOutcome.FAILED, reason=str(e))
    if not isinstance(statinfo, dict) or statinfo.get('size') is None:
        return StatResult(StatOutcome.NOSIZE, reason='no size in stat output')
    return StatResult(StatOutcome.FOUND, size=statinfo['size'])
