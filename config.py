# Statement for enabling the development environment
DEBUG = False

# Define the application directory
import os
BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# Photo archive directory
LOCALARCHIVEPATH = os.environ.get('LOCALARCHIVEPATH', os.path.join(BASE_DIR, 'static', 'archive'))

# Define the database - we are working with
# SQLite for this example
DATABASE = {'name': os.environ.get('DATABASE_PATH', os.path.join(BASE_DIR, 'gallery.db'))}

# Secret key for signing the session cookie
SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me')

# Flask-Security-Too
SECURITY_PASSWORD_SALT = os.environ.get('SECURITY_PASSWORD_SALT', 'change-me-salt')
SECURITY_PASSWORD_HASH = 'bcrypt'
SECURITY_REGISTERABLE = False

# Password-protected albums: a grant stays valid this many seconds
ALBUM_ACCESS_WINDOW = 86400

# NSFW consent cookie. Leave the secret empty to keep consent session-only
NSFW_CONSENT_SECRET = os.environ.get('NSFW_CONSENT_SECRET', '')
NSFW_CONSENT_COOKIE = 'nsfw_consent'
NSFW_CONSENT_TTL = 30 * 86400

# Servable variants: name -> file suffix (None = the original upload)
VARIANTS = {
  'original': None,
  't': '_t',
  'm': '_m',
  'n': '_n',
  'c': '_c',
  'b': '_b',
  'blur': '_blur',
}

# Blurred placeholders for protected covers
BLUR_RADIUS = 20
BLUR_MAX_SIZE = (480, 480)

