#! /usr/bin/env python

# -*- coding: utf-8 -*-
"""
Generate blurred placeholders for protected albums.

Blur variants are what the listing shows for NSFW and password-protected
albums the visitor has not opened yet. By default only album covers are
processed; --all covers every image in the selected albums.

Examples:
  python cli/blur_generate.py
  python cli/blur_generate.py --album 12 --all --force
  python cli/blur_generate.py --nsfw-only
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import argparse

from app import app
from db import db, Album, Image
import util

logger = util.setup_custom_logger('gallery', service_name='cli')


def build_parser():
  parser = argparse.ArgumentParser(
    description='Generate blurred image variants for NSFW and password-protected albums')
  parser.add_argument('--album', type=int, help='process only this album id')
  parser.add_argument('--force', action='store_true', help='regenerate existing blur variants')
  parser.add_argument('--all', action='store_true',
                      help='process every image in protected albums, not just covers')
  group = parser.add_mutually_exclusive_group()
  group.add_argument('--nsfw-only', action='store_true', help='only NSFW albums')
  group.add_argument('--password-only', action='store_true', help='only password-protected albums')
  return parser


def select_albums(album_id=None, nsfw_only=False, password_only=False):
  """protected albums matching the filters"""
  is_protected = Album.password_hash.is_null(False) & (Album.password_hash != '')
  if nsfw_only:
    query = Album.select().where(Album.is_nsfw == True)
  elif password_only:
    query = Album.select().where(is_protected)
  else:
    query = Album.select().where((Album.is_nsfw == True) | is_protected)
  if album_id:
    query = query.where(Album.id == album_id)
  return query.order_by(Album.id)


def images_for_album(album, process_all=False):
  """the album's images, or just its cover"""
  if process_all:
    return list(Image.select().where(Image.album == album).order_by(Image.id))
  cover = album.cover_image
  return [cover] if cover else []


def generate(args, config):
  """run blur generation, returns a stats dict"""
  stats = {'generated': 0, 'skipped': 0, 'failed': 0}
  albums = select_albums(args.album, args.nsfw_only, args.password_only)

  for album in albums:
    protection = '+'.join(label for flag, label in
                          ((album.is_nsfw, 'NSFW'), (album.is_password_protected, 'password')) if flag)
    logger.info('Processing album #%d: %s [%s]', album.id, album.title, protection)

    images = images_for_album(album, args.all)
    if not images:
      logger.info('Album #%d has no cover image, skipping', album.id)
      stats['skipped'] += 1
      continue

    for image in images:
      try:
        if util.genBlurVariant(image.sha1, image.filetype, config, regen=args.force):
          stats['generated'] += 1
        else:
          stats['skipped'] += 1
      except (IOError, OSError) as e:
        logger.error('Album #%d image #%d: blur failed: %s', album.id, image.id, e)
        stats['failed'] += 1

  return stats


def main(argv=None):
  args = build_parser().parse_args(argv)
  db.connect(reuse_if_open=True)
  try:
    stats = generate(args, app.config)
  finally:
    db.close()

  logger.info('Blur generation complete: generated=%d skipped=%d failed=%d',
              stats['generated'], stats['skipped'], stats['failed'])
  return 1 if stats['failed'] else 0


if __name__ == "__main__":
  sys.exit(main())
