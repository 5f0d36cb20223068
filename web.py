#! /usr/bin/env python

# -*- coding: utf-8 -*-
"""
  Gallery web frontend

  Public album pages and media serving, gated per visitor by
  security.AccessGate (password grants and NSFW consent).
"""

from flask import request, session, g, redirect, url_for, abort, \
  render_template, send_from_directory, jsonify

from flask_security import Security, PeeweeUserDatastore, current_user
from flask_wtf.csrf import CSRFProtect

import bcrypt
from peewee import JOIN

from app import app
from util import setup_custom_logger, getVariantFilename, isHttps
from db import db, Album, Image, User, Role, UserRoles
from security import AccessGate, SessionContext, VisitorIdentity

# Setup logging
logger = setup_custom_logger('gallery', service_name='web')

# Configure Flask's built-in logger to use our custom logger
app.logger.handlers = logger.handlers
app.logger.setLevel(logger.level)

# Setup Flask-Security-Too (admin login)
user_datastore = PeeweeUserDatastore(db, User, Role, UserRoles)
security = Security(app, user_datastore)

# CSRF tokens on every POST form (album unlock, NSFW consent)
csrf = CSRFProtect(app)


@app.after_request
def add_security_headers(response):
    """Add headers to prevent AI scraping and training on content"""
    response.headers['X-Robots-Tag'] = 'noai, noimageai'
    return response


# Request lifecycle

@app.before_request
def before_request():
  """Connect to the database and load the visitor's access state"""
  # models may be rebound (tests), so follow them rather than the module db
  database = Album._meta.database
  if database.is_closed():
    database.connect()

  g.visitor = VisitorIdentity(
    is_admin=visitor_is_admin(),
    session_state=SessionContext.from_session(session),
    consent_cookie=request.cookies.get(app.config['NSFW_CONSENT_COOKIE']),
  )

@app.after_request
def store_visitor_state(response):
  """Write access state back to the session and issue the consent cookie"""
  visitor = getattr(g, 'visitor', None)
  if visitor is None:
    return response
  visitor.session_state.save(session)
  if visitor.issued_cookie:
    response.set_cookie(
      app.config['NSFW_CONSENT_COOKIE'],
      visitor.issued_cookie,
      max_age=app.config['NSFW_CONSENT_TTL'],
      path='/',
      httponly=True,
      secure=isHttps(request),
      samesite='Lax'
    )
  return response

@app.teardown_request
def teardown_request(exception):
  """Close database after each request"""
  database = Album._meta.database
  if not database.is_closed():
    database.close()


# Utility Functions

def visitor_is_admin():
  """Logged-in users holding the admin role bypass every gate"""
  return bool(current_user and current_user.is_authenticated and current_user.has_role('admin'))

def get_gate():
  """AccessGate for the current request"""
  return AccessGate(
    g.visitor,
    secret=app.config.get('NSFW_CONSENT_SECRET', ''),
    window=app.config['ALBUM_ACCESS_WINDOW'],
    ttl=app.config['NSFW_CONSENT_TTL'],
  )

def get_album_or_404(album_id):
  try:
    return Album.get(Album.id == album_id)
  except Album.DoesNotExist:
    abort(404)

def get_image_or_404(image_id):
  try:
    return Image.select(Image, Album).join(Album).where(Image.id == image_id).get()
  except Image.DoesNotExist:
    abort(404)

def is_local_path(target):
  """Only same-site paths are accepted as redirect targets"""
  return bool(target) and target.startswith('/') and not target.startswith('//') \
    and '\\' not in target

def media_url(image, variant):
  return url_for('serve_media', image_id=image.id, variant=variant)

@app.context_processor
def inject_media_url():
  return dict(media_url=media_url)


# URL Routing

@app.errorhandler(404)
def page_not_found(error):
  return render_template('404.html'), 404

@app.errorhandler(500)
def internal_server_error(error):
  return render_template('500.html'), 500


@app.route('/')
def index():
  """album listing - protected covers fall back to their blur"""
  gate = get_gate()
  Cover = Image.alias()
  query = (Album
           .select(Album, Cover)
           .join(Cover, JOIN.LEFT_OUTER, on=(Album.cover_image_id == Cover.id), attr='cover')
           .order_by(Album.id.desc()))
  albums = []
  for album in query:
    # left join: a missing cover comes back as an empty row
    cover = getattr(album, 'cover', None)
    if cover is not None and cover.id is None:
      cover = None
    variant = 'm' if gate.can_see_cover(album) else 'blur'
    albums.append({'album': album, 'cover': cover, 'cover_variant': variant})
  return render_template('index.html', albums=albums)


@app.route('/albums/<int:album_id>')
def show_album(album_id):
  """a single album, behind the password and NSFW gates"""
  album = get_album_or_404(album_id)
  decision = get_gate().check_album_page(album)

  if decision.reason == 'password':
    return render_template('album_password.html', album=album, error=None), 401
  if decision.reason == 'nsfw':
    return render_template('nsfw_gate.html', album=album,
                           next_url=url_for('show_album', album_id=album.id)), 403

  images = Image.select().where(Image.album == album).order_by(Image.id)
  return render_template('album.html', album=album, images=images)


@app.route('/albums/<int:album_id>/unlock', methods=['POST'])
def unlock_album(album_id):
  """check an album password and grant session access"""
  album = get_album_or_404(album_id)
  if not album.is_password_protected:
    return redirect(url_for('show_album', album_id=album.id))

  password = request.form.get('password', '')
  try:
    ok = bool(password) and bcrypt.checkpw(password.encode('utf-8'),
                                           album.password_hash.encode('utf-8'))
  except ValueError:
    logger.error('Album %d has an unusable password hash', album.id)
    ok = False

  if not ok:
    logger.info('ALBUM_UNLOCK_FAILED album_id=%d ip=%s', album.id, request.remote_addr)
    return render_template('album_password.html', album=album,
                           error='Incorrect password'), 401

  get_gate().grant_album_password_access(album.id)
  logger.info('ALBUM_UNLOCK album_id=%d ip=%s', album.id, request.remote_addr)
  return redirect(url_for('show_album', album_id=album.id))


@app.route('/nsfw-consent', methods=['POST'])
@app.route('/albums/<int:album_id>/nsfw-consent', methods=['POST'])
def nsfw_consent(album_id=None):
  """record the visitor's NSFW consent, globally and optionally per album"""
  if album_id is not None:
    album = get_album_or_404(album_id)
    default_next = url_for('show_album', album_id=album.id)
  else:
    default_next = url_for('index')

  get_gate().grant_nsfw_consent(album_id)
  logger.info('NSFW_CONSENT album_id=%s persistent=%s ip=%s', album_id,
              bool(g.visitor.issued_cookie), request.remote_addr)

  next_url = request.form.get('next')
  return redirect(next_url if is_local_path(next_url) else default_next)


@app.route('/media/<int:image_id>/<string:variant>')
def serve_media(image_id, variant):
  """serve one variant file of an image"""
  variant = variant.lower()
  if variant not in app.config['VARIANTS']:
    abort(404)
  image = get_image_or_404(image_id)
  album = image.album

  decision = get_gate().validate_album_access(album.id, album.is_password_protected,
                                              album.is_nsfw, variant)
  if not decision.allowed:
    logger.info('MEDIA_DENIED image_id=%d variant=%s reason=%s', image.id, variant, decision.reason)
    abort(403)

  filename = getVariantFilename(image.sha1, image.filetype, variant, app.config['VARIANTS'])
  return send_from_directory(app.config['LOCALARCHIVEPATH'], filename,
                             mimetype=image.mime if variant == 'original' else 'image/jpeg')


@app.route('/images/<int:image_id>/download')
def download_image(image_id):
  """download the original, honoring the album's download and password settings"""
  image = get_image_or_404(image_id)
  album = image.album
  gate = get_gate()

  if not g.visitor.is_admin:
    if not album.allow_downloads:
      abort(403)
    if album.is_password_protected and not gate.has_album_password_access(album.id):
      abort(403)
    if album.is_nsfw and not gate.has_nsfw_album_consent(album.id):
      abort(403)

  filename = getVariantFilename(image.sha1, image.filetype, 'original', app.config['VARIANTS'])
  logger.info('DOWNLOAD image_id=%d album_id=%d ip=%s', image.id, album.id, request.remote_addr)
  return send_from_directory(app.config['LOCALARCHIVEPATH'], filename,
                             mimetype=image.mime or 'application/octet-stream',
                             as_attachment=True)


@app.route('/health')
def health():
  """Health check endpoint for Docker healthchecks - no logging"""
  return jsonify({'status': 'ok'}), 200


if __name__ == '__main__':
  app.run()
