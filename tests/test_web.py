#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Unit tests for web routes
"""

import unittest
from unittest.mock import patch, PropertyMock
import tempfile
import shutil
import time
import re
import os

import bcrypt
from PIL import Image as PILImage
from peewee import SqliteDatabase

from web import app
from db import Album, Image, MODELS
from security import sign_nsfw_consent, verify_nsfw_consent_cookie
from util import getVariantFilename

SECRET = 'web-test-secret'


def write_jpeg(path, color=(200, 30, 30)):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    PILImage.new('RGB', (64, 48), color).save(path, 'JPEG')


class WebTestCase(unittest.TestCase):
    """Temp database, temp archive and a test client"""

    def setUp(self):
        self.test_db_fd, self.test_db_path = tempfile.mkstemp()
        self.test_db = SqliteDatabase(self.test_db_path, pragmas={'foreign_keys': 1})
        self.test_db.bind(MODELS, bind_refs=False, bind_backrefs=False)
        self.test_db.connect()
        self.test_db.create_tables(MODELS)

        self.archive = tempfile.mkdtemp()
        app.config['TESTING'] = True
        app.config['LOCALARCHIVEPATH'] = self.archive
        app.config['NSFW_CONSENT_SECRET'] = SECRET
        # token handling is covered by TestCsrf
        app.config['WTF_CSRF_ENABLED'] = False
        self.client = app.test_client()

    def tearDown(self):
        self.test_db.close()
        os.close(self.test_db_fd)
        os.unlink(self.test_db_path)
        shutil.rmtree(self.archive)

    def make_album(self, title='Album', is_nsfw=False, password=None, allow_downloads=False):
        password_hash = None
        if password:
            password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(4)).decode('utf-8')
        return Album.create(title=title, is_nsfw=is_nsfw, password_hash=password_hash,
                            allow_downloads=allow_downloads)

    def make_image(self, album, sha1, variants=('original', 'm', 'blur')):
        image = Image.create(album=album, sha1=sha1, filetype='jpg', mime='image/jpeg')
        for variant in variants:
            filename = getVariantFilename(sha1, 'jpg', variant, app.config['VARIANTS'])
            write_jpeg(os.path.join(self.archive, filename))
        return image


class TestBasicRoutes(WebTestCase):

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {'status': 'ok'})

    def test_404_handler(self):
        response = self.client.get('/nonexistent-page')
        self.assertEqual(response.status_code, 404)

    def test_anti_scraping_header(self):
        response = self.client.get('/health')
        self.assertEqual(response.headers['X-Robots-Tag'], 'noai, noimageai')

    def test_index_blurs_protected_covers(self):
        public = self.make_album('Public')
        nsfw = self.make_album('Spicy', is_nsfw=True)
        locked = self.make_album('Locked', password='pw')
        for album, sha1 in ((public, 'a' * 40), (nsfw, 'b' * 40), (locked, 'c' * 40)):
            image = self.make_image(album, sha1)
            album.cover_image_id = image.id
            album.save()

        response = self.client.get('/')
        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        public_cover = Image.get(Image.sha1 == 'a' * 40).id
        nsfw_cover = Image.get(Image.sha1 == 'b' * 40).id
        locked_cover = Image.get(Image.sha1 == 'c' * 40).id
        self.assertIn('/media/%d/m' % public_cover, body)
        self.assertIn('/media/%d/blur' % nsfw_cover, body)
        self.assertIn('/media/%d/blur' % locked_cover, body)


class TestAlbumPage(WebTestCase):

    def test_unknown_album(self):
        self.assertEqual(self.client.get('/albums/999').status_code, 404)

    def test_public_album(self):
        album = self.make_album('Holiday')
        response = self.client.get('/albums/%d' % album.id)
        self.assertEqual(response.status_code, 200)
        self.assertIn('Holiday', response.get_data(as_text=True))

    def test_password_form_then_unlock(self):
        album = self.make_album('Private', password='s3cret')
        response = self.client.get('/albums/%d' % album.id)
        self.assertEqual(response.status_code, 401)
        self.assertIn('password', response.get_data(as_text=True))

        response = self.client.post('/albums/%d/unlock' % album.id, data={'password': 'wrong'})
        self.assertEqual(response.status_code, 401)
        self.assertIn('Incorrect password', response.get_data(as_text=True))

        response = self.client.post('/albums/%d/unlock' % album.id, data={'password': 's3cret'})
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.location.endswith('/albums/%d' % album.id))

        response = self.client.get('/albums/%d' % album.id)
        self.assertEqual(response.status_code, 200)

    def test_expired_grant_shows_form_again(self):
        album = self.make_album('Private', password='s3cret')
        with self.client.session_transaction() as sess:
            sess['album_access'] = {str(album.id): int(time.time()) - 86400 - 5}

        response = self.client.get('/albums/%d' % album.id)
        self.assertEqual(response.status_code, 401)
        with self.client.session_transaction() as sess:
            self.assertNotIn(str(album.id), sess['album_access'])

    def test_unlock_unprotected_album_redirects(self):
        album = self.make_album('Open')
        response = self.client.post('/albums/%d/unlock' % album.id, data={'password': 'x'})
        self.assertEqual(response.status_code, 302)

    def test_corrupt_password_hash_fails_closed(self):
        album = Album.create(title='Broken', password_hash='not-a-bcrypt-hash')
        response = self.client.post('/albums/%d/unlock' % album.id, data={'password': 'x'})
        self.assertEqual(response.status_code, 401)

    def test_nsfw_gate_then_consent(self):
        album = self.make_album('Spicy', is_nsfw=True)
        response = self.client.get('/albums/%d' % album.id)
        self.assertEqual(response.status_code, 403)
        self.assertIn('nsfw-consent', response.get_data(as_text=True))

        response = self.client.post('/albums/%d/nsfw-consent' % album.id)
        self.assertEqual(response.status_code, 302)

        response = self.client.get('/albums/%d' % album.id)
        self.assertEqual(response.status_code, 200)

    @patch('web.visitor_is_admin', return_value=True)
    def test_admin_bypasses_gates(self, mock_admin):
        album = self.make_album('Both', is_nsfw=True, password='pw')
        response = self.client.get('/albums/%d' % album.id)
        self.assertEqual(response.status_code, 200)


class TestConsent(WebTestCase):

    def test_consent_issues_signed_cookie(self):
        album = self.make_album('Spicy', is_nsfw=True)
        response = self.client.post('/albums/%d/nsfw-consent' % album.id)
        cookies = response.headers.getlist('Set-Cookie')
        consent = [c for c in cookies if c.startswith('nsfw_consent=')]
        self.assertEqual(len(consent), 1)

        header = consent[0]
        value = header.split(';')[0].split('=', 1)[1].strip('"')
        self.assertTrue(verify_nsfw_consent_cookie(value, SECRET))
        self.assertIn('HttpOnly', header)
        self.assertIn('SameSite=Lax', header)
        self.assertIn('Path=/', header)
        self.assertIn('Max-Age=2592000', header)
        self.assertNotIn('Secure', header)

    def test_cookie_secure_behind_https_proxy(self):
        response = self.client.post('/nsfw-consent', headers={'X-Forwarded-Proto': 'https'})
        consent = [c for c in response.headers.getlist('Set-Cookie') if c.startswith('nsfw_consent=')]
        self.assertEqual(len(consent), 1)
        self.assertIn('Secure', consent[0])

    def test_no_cookie_without_secret(self):
        app.config['NSFW_CONSENT_SECRET'] = ''
        album = self.make_album('Spicy', is_nsfw=True)
        response = self.client.post('/albums/%d/nsfw-consent' % album.id)
        self.assertFalse(any(c.startswith('nsfw_consent=')
                             for c in response.headers.getlist('Set-Cookie')))
        # session-only consent still works
        self.assertEqual(self.client.get('/albums/%d' % album.id).status_code, 200)

    def test_cookie_alone_grants_consent(self):
        album = self.make_album('Spicy', is_nsfw=True)
        self.client.set_cookie('nsfw_consent', sign_nsfw_consent(int(time.time()), SECRET))
        self.assertEqual(self.client.get('/albums/%d' % album.id).status_code, 200)

    def test_forged_cookie_ignored(self):
        album = self.make_album('Spicy', is_nsfw=True)
        self.client.set_cookie('nsfw_consent', '1|%d|%s' % (int(time.time()), 'f' * 64))
        self.assertEqual(self.client.get('/albums/%d' % album.id).status_code, 403)

    def test_next_must_be_local(self):
        response = self.client.post('/nsfw-consent', data={'next': 'https://evil.example/'})
        self.assertTrue(response.location.endswith('/'))
        self.assertNotIn('evil', response.location)

        response = self.client.post('/nsfw-consent', data={'next': '/albums/3'})
        self.assertTrue(response.location.endswith('/albums/3'))

    def test_consent_unknown_album(self):
        self.assertEqual(self.client.post('/albums/999/nsfw-consent').status_code, 404)


class TestMedia(WebTestCase):

    def test_public_variant_served(self):
        album = self.make_album()
        image = self.make_image(album, 'd' * 40)
        response = self.client.get('/media/%d/m' % image.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, 'image/jpeg')
        response.close()

    def test_unknown_variant(self):
        album = self.make_album()
        image = self.make_image(album, 'd' * 40)
        self.assertEqual(self.client.get('/media/%d/huge' % image.id).status_code, 404)

    def test_unknown_image(self):
        self.assertEqual(self.client.get('/media/999/m').status_code, 404)

    def test_missing_file(self):
        album = self.make_album()
        image = self.make_image(album, 'e' * 40, variants=('original',))
        self.assertEqual(self.client.get('/media/%d/c' % image.id).status_code, 404)

    def test_nsfw_media_scenario(self):
        album = self.make_album('Spicy', is_nsfw=True)
        image = self.make_image(album, 'f' * 40)

        self.assertEqual(self.client.get('/media/%d/original' % image.id).status_code, 403)
        response = self.client.get('/media/%d/blur' % image.id)
        self.assertEqual(response.status_code, 200)
        response.close()

        self.client.post('/albums/%d/nsfw-consent' % album.id)
        response = self.client.get('/media/%d/original' % image.id)
        self.assertEqual(response.status_code, 200)
        response.close()

    def test_password_album_media_served(self):
        album = self.make_album('Private', password='pw')
        image = self.make_image(album, '1' * 40)
        response = self.client.get('/media/%d/original' % image.id)
        self.assertEqual(response.status_code, 200)
        response.close()

    @patch('web.visitor_is_admin', return_value=True)
    def test_admin_gets_nsfw_media(self, mock_admin):
        album = self.make_album('Spicy', is_nsfw=True)
        image = self.make_image(album, '2' * 40)
        response = self.client.get('/media/%d/original' % image.id)
        self.assertEqual(response.status_code, 200)
        response.close()


class TestDownload(WebTestCase):

    def test_downloads_disabled(self):
        album = self.make_album('NoDl')
        image = self.make_image(album, '3' * 40)
        self.assertEqual(self.client.get('/images/%d/download' % image.id).status_code, 403)

    def test_download_attachment(self):
        album = self.make_album('Dl', allow_downloads=True)
        image = self.make_image(album, '4' * 40)
        response = self.client.get('/images/%d/download' % image.id)
        self.assertEqual(response.status_code, 200)
        self.assertIn('attachment', response.headers['Content-Disposition'])
        response.close()

    def test_download_needs_password_grant(self):
        album = self.make_album('Dl', password='pw', allow_downloads=True)
        image = self.make_image(album, '5' * 40)
        self.assertEqual(self.client.get('/images/%d/download' % image.id).status_code, 403)

        self.client.post('/albums/%d/unlock' % album.id, data={'password': 'pw'})
        response = self.client.get('/images/%d/download' % image.id)
        self.assertEqual(response.status_code, 200)
        response.close()

    def test_download_needs_nsfw_consent(self):
        album = self.make_album('Dl', is_nsfw=True, allow_downloads=True)
        image = self.make_image(album, '6' * 40)
        self.assertEqual(self.client.get('/images/%d/download' % image.id).status_code, 403)

    @patch('web.visitor_is_admin', return_value=True)
    def test_admin_download_ignores_flags(self, mock_admin):
        album = self.make_album('Dl', is_nsfw=True, password='pw')
        image = self.make_image(album, '7' * 40)
        response = self.client.get('/images/%d/download' % image.id)
        self.assertEqual(response.status_code, 200)
        response.close()


class TestListingQueries(WebTestCase):

    def test_covers_loaded_with_the_albums(self):
        with_cover = self.make_album('Covered')
        image = self.make_image(with_cover, '8' * 40)
        with_cover.cover_image_id = image.id
        with_cover.save()
        self.make_album('Bare')

        # the per-album lookup must not be used by the listing
        with patch.object(Album, 'cover_image', new_callable=PropertyMock,
                          side_effect=AssertionError('cover fetched per album')):
            response = self.client.get('/')
        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        self.assertIn('/media/%d/m' % image.id, body)
        self.assertIn('Bare', body)
        self.assertEqual(body.count('/media/'), 1)


class TestCsrf(WebTestCase):
    """POST forms need the session's CSRF token"""

    def setUp(self):
        super().setUp()
        app.config['WTF_CSRF_ENABLED'] = True

    def tearDown(self):
        app.config['WTF_CSRF_ENABLED'] = False
        super().tearDown()

    def form_token(self, path):
        body = self.client.get(path).get_data(as_text=True)
        match = re.search(r'name="csrf_token" value="([^"]+)"', body)
        self.assertIsNotNone(match, 'form has no csrf_token field')
        return match.group(1)

    def test_consent_without_token_rejected(self):
        album = self.make_album('Spicy', is_nsfw=True)
        response = self.client.post('/albums/%d/nsfw-consent' % album.id,
                                    headers={'Origin': 'https://evil.example'})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(any(c.startswith('nsfw_consent=')
                             for c in response.headers.getlist('Set-Cookie')))
        self.assertEqual(self.client.get('/albums/%d' % album.id).status_code, 403)

    def test_global_consent_without_token_rejected(self):
        response = self.client.post('/nsfw-consent')
        self.assertEqual(response.status_code, 400)
        with self.client.session_transaction() as sess:
            self.assertNotIn('nsfw_confirmed_global', sess)

    def test_unlock_without_token_rejected(self):
        album = self.make_album('Private', password='s3cret')
        response = self.client.post('/albums/%d/unlock' % album.id, data={'password': 's3cret'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.get('/albums/%d' % album.id).status_code, 401)

    def test_consent_with_token(self):
        album = self.make_album('Spicy', is_nsfw=True)
        token = self.form_token('/albums/%d' % album.id)
        response = self.client.post('/albums/%d/nsfw-consent' % album.id,
                                    data={'csrf_token': token})
        self.assertEqual(response.status_code, 302)
        self.assertTrue(any(c.startswith('nsfw_consent=')
                            for c in response.headers.getlist('Set-Cookie')))
        self.assertEqual(self.client.get('/albums/%d' % album.id).status_code, 200)

    def test_unlock_with_token(self):
        album = self.make_album('Private', password='s3cret')
        token = self.form_token('/albums/%d' % album.id)
        response = self.client.post('/albums/%d/unlock' % album.id,
                                    data={'password': 's3cret', 'csrf_token': token})
        self.assertEqual(response.status_code, 302)
        self.assertEqual(self.client.get('/albums/%d' % album.id).status_code, 200)


if __name__ == '__main__':
    unittest.main()
