'''
wopi.py

Implementation of the supported WOPI calls: CheckFileInfo, GetFile and PutFile
'''

import os
import io
import http.client
import flask
import wopicore.wopiutils as utils
import wopicore.commoniface as common
import wopicore.storagetier as tiers
import wopicore.idcodec as idcodec

IO_ERROR = 'I/O Error, please contact support'

# convenience references to global entities
st = None
srv = None
log = None


def checkFileInfo(fileid, user):
    '''Implements the CheckFileInfo WOPI call'''
    try:
        filepath = idcodec.decode(fileid)
    except idcodec.InvalidFileIdError as e:
        log.info(f'msg="CheckFileInfo: invalid fileid" fileid="{fileid[-20:]}" error="{e}"')
        return 'File not found', http.client.NOT_FOUND
    try:
        statres = common.statsize(st, filepath, user)
        if statres.hassize:
            size = statres.size
        else:
            # some backends cannot report the size without opening the file: read it and take the Content-Length
            log.debug(f'msg="CheckFileInfo: falling back to readfile" filepath="{filepath}" reason="{statres.reason}"')
            size = st.readfile(filepath, user).contentlength
            if size is None and statres.outcome == common.StatOutcome.FAILED:
                raise common.StorageError(statres.reason)
        fmd = common.FileMetadata(os.path.basename(filepath), size, user, utils.getPostMessageOrigin(flask.request))
        log.info(f'msg="File metadata response" filepath="{filepath}" user="{user.username}" size="{size}" '
                 f'statoutcome="{statres.outcome.value}"')
        return utils.createJsonResponse(fmd.todict())
    except IOError as e:
        log.info(f'msg="Requested file not found" filepath="{filepath}" user="{user.username}" details="{e}"')
        return 'File not found', http.client.NOT_FOUND
    except Exception as e:      # pylint: disable=broad-except
        log.error(f'msg="CheckFileInfo: unexpected storage failure" filepath="{filepath}" user="{user.username}" '
                  f'error="{type(e).__name__}: {e}"')
        return 'File not found', http.client.NOT_FOUND


def getFile(fileid, user):
    '''Implements the GetFile WOPI call'''
    try:
        filepath = idcodec.decode(fileid)
    except idcodec.InvalidFileIdError as e:
        log.info(f'msg="GetFile: invalid fileid" fileid="{fileid[-20:]}" error="{e}"')
        return 'File not found', http.client.NOT_FOUND
    tier = tiers.resolvetier(filepath, srv.config.get('io', 'vfsstreamprefix', fallback=''))
    try:
        content, size = tiers.getreader(tier).read(filepath, user)
    except common.StorageError as e:
        log.error(f'msg="GetFile: download failed" filepath="{filepath}" tier="{tier.value}" error="{e}"')
        return 'Failed to fetch file from storage', http.client.INTERNAL_SERVER_ERROR
    log.info(f'msg="GetFile" filepath="{filepath}" user="{user.username}" tier="{tier.value}" size="{size}"')
    resp = flask.Response(content, mimetype='application/octet-stream')
    resp.status_code = http.client.OK
    if size is not None:
        resp.headers['Content-Length'] = str(size)
    resp.headers['Content-Disposition'] = f'attachment; filename="{os.path.basename(filepath)}"'
    resp.headers['X-Frame-Options'] = 'sameorigin'
    resp.headers['X-XSS-Protection'] = '1; mode=block'
    return resp


def _getbody(req):
    '''Returns the request body as a readable binary stream, or raises MissingBodyError'''
    body = req.get_data()
    if not body:
        raise common.MissingBodyError('Not possible to get the file content')
    return io.BytesIO(body)


def putFile(fileid, user):
    '''Implements the PutFile WOPI call. The file is overwritten unconditionally.'''
    try:
        stream = _getbody(flask.request)
        filepath = idcodec.decode(fileid)
    except (common.MissingBodyError, idcodec.InvalidFileIdError) as e:
        log.warning(f'msg="PutFile: nothing to store" fileid="{fileid[-20:]}" user="{user.username}" error="{e}"')
        return '', http.client.NOT_FOUND
    # no version check is performed: concurrent editors may overwrite each other's changes
    size = len(stream.getbuffer())
    log.debug(f'msg="PutFile: overwriting file" filepath="{filepath}" user="{user.username}" size="{size}"')
    st.writefile(filepath, user, stream)
    log.info(f'msg="File stored successfully" filepath="{filepath}" user="{user.username}" size="{size}"')
    return '', http.client.OK
