'''
wsgi.py

A tiny wrapper to run wopiadapter.py inside wsgi and Nginx
'''
from wopiadapter import WopiAdapter

WopiAdapter.init()
WopiAdapter.log.info('msg="WOPI Adapter starting in Nginx mode"')
WopiAdapter.useHttps = False    # force http as SSL is handled by nginx
application = WopiAdapter.app        # from now on control is given to uwsgi
