#!/usr/bin/python3
'''
This tool can be used to test the discovery workflow in a development environment.
Call the /wopi/discovery REST API on the given file and print the editor URL and the fileid,
together with a ready-to-use URL for direct editing.
'''

import sys
import getopt
from urllib.parse import quote_plus as url_quote_plus
import requests


# usage function
def usage(exitcode):
    '''Prints usage'''
    print('Usage : ' + sys.argv[0] + ' -w|--wopiurl <adapter_url> [-u|--user <username>] [-k|--insecure] <filepath>')
    sys.exit(exitcode)


def makeediturl(res, wopiurl):
    '''Returns the URL to open the given discovery result in the editor'''
    wopisrc = url_quote_plus(f"{wopiurl}/wopi/files/{res['fileId']}")
    return f"{res['url']}{'&' if '?' in res['url'] else '?'}WOPISrc={wopisrc}&access_token={res['token']}"


def main(argv):
    '''Parses the options and calls the discovery endpoint'''
    try:
        options, args = getopt.getopt(argv, 'hw:u:k', ['help', 'wopiurl=', 'user=', 'insecure'])
    except getopt.GetoptError as e:
        print(e)
        usage(1)
    wopiurl = ''
    username = ''
    verify = True
    for f, v in options:
        if f in ('-h', '--help'):
            usage(0)
        elif f in ('-w', '--wopiurl'):
            wopiurl = v.rstrip('/')
        elif f in ('-u', '--user'):
            username = v
        elif f in ('-k', '--insecure'):
            verify = False

    # deal with arguments
    if len(args) != 1 or not wopiurl:
        print('Adapter URL and filepath arguments must be specified')
        usage(1)

    headers = {'X-Remote-User': username} if username else {}
    try:
        discReq = requests.get(wopiurl + '/wopi/discovery', params={'id': args[0]}, headers=headers,
                               verify=verify, timeout=30)
    except requests.exceptions.RequestException as e:
        print(f'WOPI discovery request failed: {e}')
        return -1
    if discReq.status_code != 200:
        print(f'WOPI discovery request failed with status {discReq.status_code}:\n{discReq.content.decode()}')
        return -1
    res = discReq.json()
    print(f"url: {res['url']}\nfileId: {res['fileId']}\ntoken: {res['token']}")
    print(f'edit url: {makeediturl(res, wopiurl)}')
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
