#! /usr/bin/env python

# -*- coding: utf-8 -*-

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import argparse

from db import db, MODELS
import util

logger = util.setup_custom_logger('gallery', service_name='cli')


def create_tables(models, drop=False):
  if drop:
    # children first
    for model in reversed(models):
      model.drop_table(safe=True)
  for model in models:
    logger.info('Creating table for model %s' % model.__name__)
    model.create_table(safe=True)

def main(argv=None):
  """Main program"""
  parser = argparse.ArgumentParser(description='create the gallery tables')
  parser.add_argument('--drop', action='store_true', help='drop existing tables first (destroys data)')
  args = parser.parse_args(argv)

  db.connect(reuse_if_open=True)
  try:
    create_tables(MODELS, drop=args.drop)
  finally:
    db.close()


# MAIN

if __name__ == "__main__":
  main()
