#! /usr/bin/env python

"""Album access gate: admin bypass, password grants and NSFW consent

Everything here works on a VisitorIdentity built once per request, so the
gate never touches flask.session or request.cookies directly. web.py loads
the identity in before_request and writes it back in after_request.
"""

import hmac
import hashlib
import logging
import time
from collections import namedtuple

logger = logging.getLogger('gallery')

ALBUM_ACCESS_WINDOW = 86400
NSFW_CONSENT_TTL = 30 * 86400
BLUR_VARIANT = 'blur'


AccessDecision = namedtuple('AccessDecision', ['allowed', 'reason'])
ALLOW = AccessDecision(True, None)

def deny(reason):
  return AccessDecision(False, reason)


def _album_key(album_id):
  return str(album_id)

def _is_timestamp(value):
  # bool is an int subclass but never a timestamp
  return isinstance(value, int) and not isinstance(value, bool)


class SessionContext(object):
  """Access state kept in the visitor's session

  album_access maps album id -> unix time of the password grant,
  nsfw_confirmed maps album id -> True for per-album consent. Keys are
  stored as strings because the session is JSON serialized.
  """

  def __init__(self, album_access=None, nsfw_confirmed_global=False, nsfw_confirmed=None):
    self.album_access = dict(album_access or {})
    self.nsfw_confirmed_global = nsfw_confirmed_global
    self.nsfw_confirmed = dict(nsfw_confirmed or {})
    self.modified = False

  @classmethod
  def from_session(cls, session):
    """Build from a session mapping, dropping anything malformed"""
    album_access = session.get('album_access')
    if not isinstance(album_access, dict):
      album_access = {}
    nsfw_confirmed = session.get('nsfw_confirmed')
    if not isinstance(nsfw_confirmed, dict):
      nsfw_confirmed = {}
    return cls(
      album_access={str(k): v for k, v in album_access.items()},
      nsfw_confirmed_global=session.get('nsfw_confirmed_global') is True,
      nsfw_confirmed={str(k): v for k, v in nsfw_confirmed.items()},
    )

  def save(self, session):
    """Write back to the session mapping if anything changed"""
    if not self.modified:
      return
    session['album_access'] = dict(self.album_access)
    session['nsfw_confirmed_global'] = self.nsfw_confirmed_global
    session['nsfw_confirmed'] = dict(self.nsfw_confirmed)
    self.modified = False


class VisitorIdentity(object):
  """Who is asking: admin flag, session state and the raw consent cookie"""

  def __init__(self, is_admin=False, session_state=None, consent_cookie=None):
    self.is_admin = bool(is_admin)
    self.session_state = session_state if session_state is not None else SessionContext()
    self.consent_cookie = consent_cookie
    # Cookie value issued during this request, set on the response by web.py
    self.issued_cookie = None


def sign_nsfw_consent(timestamp, secret):
  """Return the signed cookie value '1|<timestamp>|<hex hmac>'"""
  payload = '1|%d' % int(timestamp)
  signature = hmac.new(secret.encode('utf-8'), payload.encode('utf-8'), hashlib.sha256).hexdigest()
  return '%s|%s' % (payload, signature)


def verify_nsfw_consent_cookie(value, secret, now=None, ttl=NSFW_CONSENT_TTL):
  """
  Check a consent cookie value.

  Valid only when it has exactly three '|' separated parts, the flag is
  '1', the timestamp is numeric, the HMAC-SHA256 of '<flag>|<timestamp>'
  matches (constant time) and 0 <= now - timestamp <= ttl.
  """
  if not value or not secret or not isinstance(value, str):
    return False
  parts = value.split('|')
  if len(parts) != 3:
    return False
  flag, timestamp, signature = parts
  if flag != '1' or not (timestamp.isascii() and timestamp.isdigit()):
    return False

  payload = '%s|%s' % (flag, timestamp)
  expected = hmac.new(secret.encode('utf-8'), payload.encode('utf-8'), hashlib.sha256).hexdigest()
  if not hmac.compare_digest(expected.encode('ascii'), signature.encode('utf-8')):
    return False

  if now is None:
    now = time.time()
  age = int(now) - int(timestamp)
  return 0 <= age <= ttl


class AccessGate(object):
  """
  Decides what a visitor may see of an album.

  Args:
    visitor: VisitorIdentity for the current request
    secret: HMAC key for the consent cookie; empty disables the cookie
    clock: callable returning unix time, defaults to time.time
    window: password grant lifetime in seconds
    ttl: consent cookie lifetime in seconds
  """

  def __init__(self, visitor, secret='', clock=None, window=ALBUM_ACCESS_WINDOW,
               ttl=NSFW_CONSENT_TTL):
    self.visitor = visitor
    self.secret = secret or ''
    self.clock = clock or time.time
    self.window = window
    self.ttl = ttl

  @property
  def state(self):
    return self.visitor.session_state

  def now(self):
    return int(self.clock())

  # Password grants

  def has_album_password_access(self, album_id):
    key = _album_key(album_id)
    granted_at = self.state.album_access.get(key)
    if not _is_timestamp(granted_at):
      return False
    if self.now() - granted_at >= self.window:
      logger.debug('Album %s password grant expired, purging', album_id)
      del self.state.album_access[key]
      self.state.modified = True
      return False
    return True

  def grant_album_password_access(self, album_id):
    if not _is_timestamp(album_id) or album_id <= 0:
      return
    self.state.album_access[_album_key(album_id)] = self.now()
    self.state.modified = True

  # NSFW consent

  def has_nsfw_consent(self):
    if self.visitor.is_admin:
      return True
    if self.state.nsfw_confirmed_global:
      return True
    if verify_nsfw_consent_cookie(self.visitor.consent_cookie, self.secret,
                                  now=self.now(), ttl=self.ttl):
      # cache in the session so later requests skip the HMAC
      self.state.nsfw_confirmed_global = True
      self.state.modified = True
      return True
    return False

  def has_nsfw_album_consent(self, album_id):
    if self.has_nsfw_consent():
      return True
    return self.state.nsfw_confirmed.get(_album_key(album_id)) is True

  def grant_nsfw_consent(self, album_id=None):
    """Record consent globally (and for album_id) and issue the cookie"""
    self.state.nsfw_confirmed_global = True
    if album_id is not None:
      self.state.nsfw_confirmed[_album_key(album_id)] = True
    self.state.modified = True

    if not self.secret:
      logger.debug('NSFW_CONSENT_SECRET not set, consent kept in session only')
      return None
    self.visitor.issued_cookie = sign_nsfw_consent(self.now(), self.secret)
    return self.visitor.issued_cookie

  # Decisions

  def validate_album_access(self, album_id, is_password_protected, is_nsfw, variant=None):
    """
    Decide whether a media variant of an album may be served.

    Blur previews are always served so listings can show protected covers.
    Password protection only guards the album page, not media URLs.
    """
    if self.visitor.is_admin:
      return ALLOW
    if variant is not None and str(variant).lower() == BLUR_VARIANT:
      return ALLOW
    if is_nsfw and not self.has_nsfw_album_consent(album_id):
      return deny('nsfw')
    return ALLOW

  def check_album_page(self, album):
    """Page-level gate: password first, then NSFW consent"""
    if self.visitor.is_admin:
      return ALLOW
    if album.is_password_protected and not self.has_album_password_access(album.id):
      return deny('password')
    if album.is_nsfw and not self.has_nsfw_album_consent(album.id):
      return deny('nsfw')
    return ALLOW

  def can_see_cover(self, album):
    """Whether a listing may link the full cover rather than its blur"""
    return self.check_album_page(album).allowed
