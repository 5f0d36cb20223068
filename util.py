#! /usr/bin/env python

"""utility methods"""

import os.path, logging
from PIL import Image, ImageFilter

# set up logging
logger = logging.getLogger('gallery')


def setup_custom_logger(name, service_name='app'):
    """Setup logger that writes to both console and shared file

    Args:
        name: Logger name (usually 'gallery')
        service_name: Service identifier ('web' or 'cli') to tell processes apart

    Calling it again for the same logger keeps the existing handlers and
    switches them to the latest service tag.
    """
    # Format: timestamp [SERVICE] LEVEL - module - message
    formatter = logging.Formatter(
        fmt=f'%(asctime)s [{service_name.upper()}] %(levelname)s - %(module)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Avoid duplicate handlers if called multiple times
    if logger.handlers:
        for handler in logger.handlers:
            handler.setFormatter(formatter)
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Shared log file, only when a log directory is configured
    log_dir = os.environ.get('GALLERY_LOG_DIR')
    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(os.path.join(log_dir, 'gallery.log'))
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f'Could not setup file logging: {e}')

    return logger


def getSha1Path(sha1):
  """returns a list consisting of (sha1Path,filename)"""
  dir1=sha1[:2]
  dir2=sha1[2:4]
  dir3=sha1[4:6]
  filename=sha1[6:40]
  return(dir1+'/'+dir2+'/'+dir3,filename)

def getVariantFilename(sha1,fileType,variant,variants):
  """archive-relative filename of a variant, or None for an unknown variant"""
  if variant not in variants:
    return None
  (sha1Path,filename) = getSha1Path(sha1)
  suffix = variants[variant]
  if suffix is None:
    return '%s/%s.%s' % (sha1Path,filename,fileType)
  return '%s/%s%s.jpg' % (sha1Path,filename,suffix)

def isHttps(request):
  """True when the request reached us (or the proxy in front) over HTTPS"""
  return request.is_secure or request.headers.get('X-Forwarded-Proto', '') == 'https'


def genBlurVariant(sha1,fileType,config,regen=False):
  """generate the blurred placeholder for one image - returns its filename

  Returns None when the blur already exists and regen is False.
  """
  variants = config['VARIANTS']
  blurFilename = getVariantFilename(sha1,fileType,'blur',variants)
  sourceFilename = getVariantFilename(sha1,fileType,'original',variants)
  blurFullPath = os.path.join(config['LOCALARCHIVEPATH'],blurFilename)
  sourceFullPath = os.path.join(config['LOCALARCHIVEPATH'],sourceFilename)

  if os.path.isfile(blurFullPath) and not regen:
    logger.info('Blur EXISTS (skipping): %s', blurFilename)
    return None

  if not os.path.exists(sourceFullPath):
    logger.error('Blur Generation FAILED: Source file does not exist: %s', sourceFullPath)
    raise IOError('Source file does not exist: %s' % sourceFullPath)

  logger.info('Blur Generation START: source=%s target=%s', sourceFilename, blurFilename)
  with Image.open(sourceFullPath) as img:
    # JPEG output: flatten transparency onto white
    if img.mode == 'P':
      img = img.convert('RGBA')
    if img.mode in ('RGBA', 'LA'):
      background = Image.new('RGB', img.size, (255, 255, 255))
      background.paste(img, mask=img.split()[-1])
      img = background
    elif img.mode != 'RGB':
      img = img.convert('RGB')

    img.thumbnail(tuple(config['BLUR_MAX_SIZE']), Image.Resampling.LANCZOS)
    blurred = img.filter(ImageFilter.GaussianBlur(radius=config['BLUR_RADIUS']))

  os.makedirs(os.path.dirname(blurFullPath), exist_ok=True)
  blurred.save(blurFullPath, 'JPEG', quality=60)
  logger.info('Blur Generation SUCCESS: %s (%d bytes)', blurFilename, os.path.getsize(blurFullPath))
  return blurFilename
