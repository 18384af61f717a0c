'''
localvfs.py

Local VFS implementation for the WOPI adapter.
Note that this VFS is meant for development and testing purposes: files are
stored under the configured storagehomepath, optionally split per user when
the path includes the `<username>` placeholder.
'''

import time
import os
from stat import S_ISDIR
import wopicore.commoniface as common

# module-wide state
config = None
log = None
homepath = None


def _getuserroot(user):
    '''Returns the root folder for the given user'''
    if '<username>' in homepath:
        username = user.username or ''
        if not username or os.sep in username or '/' in username or username in ('.', '..'):
            log.warning(f'msg="Invalid username for a per-user storage root" user="{username}"')
            raise common.StorageError(common.ACCESS_ERROR)
    return os.path.normpath(homepath.replace('<username>', user.username))


def _getfilepath(filepath, user):
    '''Map the given filepath into the target fs by prepending the user root (see storagehomepath in the config).
    Paths escaping the user root are refused.'''
    root = _getuserroot(user)
    target = os.path.normpath(root + os.sep + filepath)
    if target != root and not target.startswith(root + os.sep):
        log.warning(f'msg="Attempt to access a path outside the storage root" filepath="{filepath}" user="{user.username}"')
        raise common.StorageError(common.ACCESS_ERROR)
    return target


def init(inconfig, inlog):
    '''Init module-level variables'''
    global config               # pylint: disable=global-statement
    global log                  # pylint: disable=global-statement
    global homepath             # pylint: disable=global-statement
    config = inconfig
    log = inlog
    homepath = config.get('local', 'storagehomepath')
    if '<username>' in homepath:
        # per-user folders are validated lazily on access
        return
    try:
        # validate the given storagehomepath folder
        mode = os.stat(homepath).st_mode
        if not S_ISDIR(mode):
            raise IOError('Not a directory')
    except IOError as e:
        raise IOError(f'Could not stat storagehomepath folder {homepath}: {e}')


def healthcheck():
    '''Probes the storage and returns a status message'''
    if '<username>' in homepath or os.path.isdir(homepath):
        return 'OK'
    return 'Storage root not found'


def stat(filepath, user):
    '''Stat a file and return its metadata. This method assumes that the given user has access.'''
    try:
        tstart = time.time()
        statInfo = os.stat(_getfilepath(filepath, user))
        tend = time.time()
        log.info('msg="Invoked stat" filepath="%s" elapsedTimems="%.1f"' % (filepath, (tend - tstart) * 1000))
        if S_ISDIR(statInfo.st_mode):
            raise common.StorageError('Is a directory')
        return {
            'filepath': filepath,
            'ownerid': str(statInfo.st_uid) + ':' + str(statInfo.st_gid),
            'size': statInfo.st_size,
            'mtime': statInfo.st_mtime,
        }
    except FileNotFoundError:
        raise common.StorageError(common.ENOENT_MSG)
    except PermissionError as e:
        raise common.StorageError(e)


def realpath(filepath, user):
    '''Returns the canonical on-disk path of the given file'''
    return os.path.realpath(_getfilepath(filepath, user))


def _readchunks(fullpath, filepath):
    '''Generator over the file chunks. As this is a generator, errors are yielded instead of raised'''
    try:
        chunksize = config.getint('io', 'chunksize')
        with open(fullpath, mode='rb', buffering=chunksize) as f:
            for chunk in iter(lambda: f.read(chunksize), b''):
                yield chunk
    except FileNotFoundError:
        # log this case as info to keep the logs cleaner
        log.info(f'msg="File not found on read" filepath="{filepath}"')
        yield common.StorageError(common.ENOENT_MSG)
    except OSError as e:
        log.error(f'msg="Error opening the file for read" filepath="{filepath}" error="{e}"')
        yield common.StorageError(e)


def readfile(filepath, user):
    '''Read a file on behalf of the given user. The returned response carries the Content-Length header
    when the file exists, and its content is produced lazily by a generator.'''
    log.debug(f'msg="Invoking readFile" filepath="{filepath}"')
    fullpath = _getfilepath(filepath, user)
    headers = {}
    try:
        headers['Content-Length'] = str(os.path.getsize(fullpath))
    except OSError:
        # the error will be reported by the generator
        pass
    return common.ReadResponse(_readchunks(fullpath, filepath), headers)


def writefile(filepath, user, stream):
    '''Write a file on behalf of the given user, reading the content from the given binary stream.
    The entire content is written and any pre-existing file is overwritten.'''
    chunksize = config.getint('io', 'chunksize')
    fullpath = _getfilepath(filepath, user)
    log.debug(f'msg="Invoking writeFile" filepath="{filepath}"')
    tstart = time.time()
    written = 0
    try:
        with open(fullpath, mode='wb') as f:
            for chunk in iter(lambda: stream.read(chunksize), b''):
                written += f.write(chunk)
    except OSError as e:
        log.error(f'msg="Error writing file" filepath="{filepath}" error="{e}"')
        raise common.StorageError(e)
    tend = time.time()
    log.info('msg="File written successfully" filepath="%s" size="%d" elapsedTimems="%.1f"' %
             (filepath, written, (tend - tstart) * 1000))
