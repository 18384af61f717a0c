'''
test_wopi.py

Unit testing of the CheckFileInfo, GetFile and PutFile WOPI calls, with the VFS mocked.
'''

import os
import unittest
from unittest import mock
from wopitestutils import initadapter, WopiAdapter
import wopicore.wopi as wopi
import wopicore.storagetier as tiers
import wopicore.commoniface as common
import wopicore.idcodec as idcodec

USERHEADERS = {'X-Remote-User': 'alice', 'X-Remote-UserId': '1001'}
ALICE = common.UserInfo('alice', '1001')


class WopiTestCase(unittest.TestCase):
    '''Base class: sets up the adapter and replaces the VFS with a mock for each test'''

    @classmethod
    def setUpClass(cls):
        cls.tmpdir, cls.homepath = initadapter()
        cls.client = WopiAdapter.app.test_client()

    @classmethod
    def tearDownClass(cls):
        cls.tmpdir.cleanup()

    def setUp(self):
        self.origst = wopi.st
        self.vfs = mock.MagicMock()
        wopi.st = tiers.st = self.vfs

    def tearDown(self):
        wopi.st = tiers.st = self.origst


class TestCheckFileInfo(WopiTestCase):

    def _checkfileinfo(self, filepath='docs/report.txt'):
        return self.client.get('/wopi/files/' + idcodec.encode(filepath), headers=USERHEADERS)

    def test_stat_size(self):
        '''When stat returns a size, it is used and readfile is never invoked'''
        self.vfs.stat.return_value = {'size': 42}
        res = self._checkfileinfo()
        self.assertEqual(res.status_code, 200)
        fmd = res.get_json()
        self.assertEqual(fmd['BaseFileName'], 'report.txt')
        self.assertEqual(fmd['Size'], 42)
        self.assertEqual(fmd['UserId'], '1001')
        self.assertEqual(fmd['OwnerId'], 'alice')
        self.assertTrue(fmd['UserCanWrite'])
        self.assertTrue(fmd['SupportsUpdate'])
        self.assertEqual(fmd['PostMessageOrigin'], 'http://localhost')
        self.vfs.stat.assert_called_once_with('docs/report.txt', ALICE)
        self.vfs.readfile.assert_not_called()

    def test_stat_unsupported(self):
        '''When stat is not supported, the size is taken from the readfile Content-Length'''
        self.vfs.stat.side_effect = NotImplementedError
        self.vfs.readfile.return_value = common.ReadResponse(iter([b'1234567']), {'content-length': '7'})
        res = self._checkfileinfo()
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()['Size'], 7)
        self.vfs.readfile.assert_called_once_with('docs/report.txt', ALICE)

    def test_stat_nosize(self):
        '''When stat does not report a size, the size is taken from the readfile Content-Length'''
        self.vfs.stat.return_value = {'mtime': 1234}
        self.vfs.readfile.return_value = common.ReadResponse(iter([]), {'Content-Length': '13'})
        res = self._checkfileinfo()
        self.assertEqual(res.get_json()['Size'], 13)

    def test_stat_failed(self):
        '''When stat fails, the readfile fallback is still attempted'''
        self.vfs.stat.side_effect = common.StorageError('Transient failure')
        self.vfs.readfile.return_value = common.ReadResponse(iter([]), {'Content-Length': '5'})
        res = self._checkfileinfo()
        self.assertEqual(res.get_json()['Size'], 5)

    def test_stat_unexpected_error(self):
        '''Any other exception raised by stat also falls back to readfile'''
        self.vfs.stat.side_effect = RuntimeError('backend exploded')
        self.vfs.readfile.return_value = common.ReadResponse(iter([]), {'Content-Length': '9'})
        res = self._checkfileinfo()
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()['Size'], 9)
        self.vfs.readfile.assert_called_once_with('docs/report.txt', ALICE)

    def test_readfile_unexpected_error(self):
        self.vfs.stat.side_effect = RuntimeError('backend exploded')
        self.vfs.readfile.side_effect = RuntimeError('backend still exploded')
        res = self._checkfileinfo()
        self.assertEqual(res.status_code, 404)

    def test_not_found(self):
        '''When neither stat nor readfile can tell the size, the file is reported as not found'''
        self.vfs.stat.side_effect = common.StorageError(common.ENOENT_MSG)
        self.vfs.readfile.return_value = common.ReadResponse(iter([]))
        res = self._checkfileinfo()
        self.assertEqual(res.status_code, 404)

    def test_readfile_failed(self):
        self.vfs.stat.side_effect = NotImplementedError
        self.vfs.readfile.side_effect = common.StorageError('Backend unavailable')
        res = self._checkfileinfo()
        self.assertEqual(res.status_code, 404)

    def test_invalid_fileid(self):
        res = self.client.get('/wopi/files/not-a-valid-fileid', headers=USERHEADERS)
        self.assertEqual(res.status_code, 404)
        self.vfs.stat.assert_not_called()


class TestGetFile(WopiTestCase):

    def _getfile(self, filepath):
        return self.client.get('/wopi/files/' + idcodec.encode(filepath) + '/contents', headers=USERHEADERS)

    def test_vfs_stream(self):
        '''Paths with the stream prefix are served by piping the VFS readfile response'''
        self.vfs.readfile.return_value = common.ReadResponse(iter([b'hel', b'lo ', b'world']),
                                                             {'Content-Length': '11'})
        res = self._getfile('myMonster/hello.txt')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_data(), b'hello world')
        self.assertEqual(res.headers['Content-Length'], '11')
        self.assertIn('hello.txt', res.headers['Content-Disposition'])
        self.vfs.readfile.assert_called_once_with('myMonster/hello.txt', ALICE)
        self.vfs.realpath.assert_not_called()

    def test_vfs_stream_error(self):
        '''A failure reported by the VFS before any content is sent gives a 500'''
        self.vfs.readfile.return_value = common.ReadResponse(iter([common.StorageError(common.ENOENT_MSG)]))
        res = self._getfile('myMonster/missing.txt')
        self.assertEqual(res.status_code, 500)

    def test_local_buffered(self):
        '''Other paths are resolved via realpath and read from local storage'''
        localpath = os.path.join(self.homepath, 'local.txt')
        with open(localpath, 'wb') as f:
            f.write(b'local content')
        self.vfs.realpath.return_value = localpath
        res = self._getfile('projects/local.txt')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_data(), b'local content')
        self.assertEqual(res.headers['Content-Length'], str(len(b'local content')))
        self.vfs.realpath.assert_called_once_with('projects/local.txt', ALICE)
        self.vfs.readfile.assert_not_called()

    def test_local_missing(self):
        '''A missing local file is an unhandled I/O error, reported as a generic 500'''
        self.vfs.realpath.return_value = os.path.join(self.homepath, 'hopefullynotexisting')
        res = self._getfile('projects/hopefullynotexisting')
        self.assertEqual(res.status_code, 500)

    def test_tiers(self):
        self.assertEqual(tiers.resolvetier('myMonster/a.txt', 'myMonster'), tiers.StorageTier.VFS_STREAM)
        self.assertEqual(tiers.resolvetier('other/myMonster/a.txt', 'myMonster'), tiers.StorageTier.LOCAL_BUFFERED)
        self.assertEqual(tiers.resolvetier('myMonster/a.txt', ''), tiers.StorageTier.LOCAL_BUFFERED)


class TestPutFile(WopiTestCase):

    def _putfile(self, data):
        return self.client.post('/wopi/files/' + idcodec.encode('docs/report.txt') + '/contents',
                                headers=USERHEADERS, data=data)

    def test_putfile(self):
        '''The request body reaches writefile as a stream with the same bytes'''
        written = []
        self.vfs.writefile.side_effect = lambda filepath, user, stream: written.append(stream.read())
        res = self._putfile(b'new content\x00\xff')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_data(), b'')
        self.assertEqual(written, [b'new content\x00\xff'])
        self.assertEqual(self.vfs.writefile.call_args[0][:2], ('docs/report.txt', ALICE))

    def test_putfile_nobody(self):
        '''An empty body gives a 404 and writefile is never called'''
        res = self._putfile(b'')
        self.assertEqual(res.status_code, 404)
        self.vfs.writefile.assert_not_called()

    def test_putfile_storage_error(self):
        self.vfs.writefile.side_effect = common.StorageError(common.ACCESS_ERROR)
        res = self._putfile(b'data')
        self.assertEqual(res.status_code, 500)


if __name__ == '__main__':
    unittest.main()
