'''
storagetier.py

The two storage tiers a file can be read from: the VFS-mediated store, whose
content is streamed chunk by chunk, and the directly-mounted local storage,
whose content is resolved via the VFS realpath and read whole in memory.
'''

from enum import Enum
from more_itertools import peekable

# convenience references to global entities
st = None
log = None


class StorageTier(Enum):
    '''Where the content of a given path is to be read from'''
    VFS_STREAM = 'vfs-stream'
    LOCAL_BUFFERED = 'local-buffered'


def resolvetier(filepath, streamprefix):
    '''Returns the storage tier for the given path: paths starting with streamprefix
    are served through the VFS, all others from local storage'''
    if streamprefix and filepath.startswith(streamprefix):
        return StorageTier.VFS_STREAM
    return StorageTier.LOCAL_BUFFERED


class VfsStreamReader:
    '''Streams the content out of a VFS readfile response'''
    tier = StorageTier.VFS_STREAM

    def read(self, filepath, user):
        '''Returns a tuple (chunks, contentlength) where chunks is a peekable iterator.
        Raises IOError if the VFS reports a failure before the first chunk.'''
        response = st.readfile(filepath, user)
        chunks = peekable(response)
        firstchunk = chunks.peek(None)
        if isinstance(firstchunk, IOError):
            raise firstchunk
        return chunks, response.contentlength


class LocalBufferedReader:
    '''Reads the whole content from local storage after resolving the real path via the VFS'''
    tier = StorageTier.LOCAL_BUFFERED

    def read(self, filepath, user):
        '''Returns a tuple (content, contentlength), with content fully in memory'''
        realpath = st.realpath(filepath, user)
        log.debug(f'msg="Reading from local storage" filepath="{filepath}" realpath="{realpath}"')
        with open(realpath, mode='rb') as f:
            content = f.read()
        return content, len(content)


READERS = {
    StorageTier.VFS_STREAM: VfsStreamReader(),
    StorageTier.LOCAL_BUFFERED: LocalBufferedReader(),
}


def getreader(tier):
    '''Returns the reader implementation for the given tier'''
    return READERS[tier]
