'''
The core of the WOPI adapter: discovery, fileid codec, WOPI calls and VFS implementations.
'''
