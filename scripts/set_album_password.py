#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Set an album's protection flags

  python scripts/set_album_password.py 12 --password
  python scripts/set_album_password.py 12 --clear-password
  python scripts/set_album_password.py 12 --nsfw yes --downloads no

Visitors who unlocked the album before a password change keep their
session grant until it expires.
"""

import sys
import os
import argparse
import getpass
import bcrypt

# Add parent directory to path so we can import app modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import db, Album
import util

logger = util.setup_custom_logger('gallery', service_name='cli')

YES_NO = {'yes': True, 'no': False}


def hash_password(password):
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def apply_changes(album, password=None, clear_password=False, nsfw=None, downloads=None):
    """update the album in place and save it, returns the list of changes"""
    changes = []
    if clear_password:
        album.password_hash = None
        changes.append('password cleared')
    elif password:
        album.password_hash = hash_password(password)
        changes.append('password set')
    if nsfw is not None:
        album.is_nsfw = nsfw
        changes.append('nsfw=%s' % nsfw)
    if downloads is not None:
        album.allow_downloads = downloads
        changes.append('allow_downloads=%s' % downloads)
    if changes:
        album.save()
    return changes


def main(argv=None):
    parser = argparse.ArgumentParser(description='set album password, NSFW and download flags')
    parser.add_argument('album_id', type=int)
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--password', action='store_true', help='prompt for a new password')
    group.add_argument('--clear-password', action='store_true', help='remove password protection')
    parser.add_argument('--nsfw', choices=YES_NO.keys())
    parser.add_argument('--downloads', choices=YES_NO.keys())
    args = parser.parse_args(argv)

    db.connect(reuse_if_open=True)
    try:
        album = Album.get_or_none(Album.id == args.album_id)
        if album is None:
            print('Album %d not found' % args.album_id)
            return 1

        password = None
        if args.password:
            password = getpass.getpass('New album password: ')
            if not password:
                print('Password is required')
                return 1

        changes = apply_changes(
            album,
            password=password,
            clear_password=args.clear_password,
            nsfw=YES_NO.get(args.nsfw),
            downloads=YES_NO.get(args.downloads),
        )
    finally:
        db.close()

    if changes:
        logger.info('Album %d updated: %s', album.id, ', '.join(changes))
    else:
        print('Nothing to change')
    return 0


if __name__ == '__main__':
    sys.exit(main())
