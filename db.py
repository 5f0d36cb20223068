#! /usr/bin/env python

import datetime
from peewee import *

from flask_security import UserMixin, RoleMixin

from app import app

# Create database instance with foreign key constraints enabled
db = SqliteDatabase(app.config['DATABASE']['name'], pragmas={'foreign_keys': 1})

class BaseModel(Model):
  class Meta:
    database = db

class Album(BaseModel):
  title        = TextField(null=False)
  is_nsfw      = BooleanField(default=False)
  password_hash = TextField(null=True)  # bcrypt; NULL = not protected
  allow_downloads = BooleanField(default=False)
  cover_image_id = IntegerField(null=True)  # Image.id, not a FK to avoid the cycle
  ts           = DateTimeField(default=lambda: datetime.datetime.now())

  @property
  def is_password_protected(self):
    return bool(self.password_hash)

  @property
  def cover_image(self):
    if not self.cover_image_id:
      return None
    return Image.get_or_none(Image.id == self.cover_image_id)

class Image(BaseModel):
  album        = ForeignKeyField(Album, backref='images', on_delete='CASCADE')
  sha1         = TextField(null=False, unique=True)
  filetype     = TextField(null=False)
  mime         = TextField(null=True)
  ts           = DateTimeField(default=lambda: datetime.datetime.now())

class Role(BaseModel, RoleMixin):
  name         = CharField(unique=True)
  description  = TextField(null=True)

  def get_permissions(self):
    """Stub for Flask-Principal compatibility (we don't use permissions)"""
    return []


class User(BaseModel, UserMixin):
  email        = TextField(unique=True)
  password     = TextField(null=False)
  active       = BooleanField(default=True)
  confirmed_at = DateTimeField(null=True)
  fs_uniquifier = TextField(unique=True, null=True)  # Required by Flask-Security-Too 5.x
  ts           = DateTimeField(default=lambda: datetime.datetime.now())

  @property
  def roles(self):
    """Role objects instead of the UserRoles backref (Flask-Security compatibility)"""
    return [ur.role for ur in UserRoles.select().where(UserRoles.user == self)]

  def has_role(self, role_name):
    for role in self.roles:
      if role.name == role_name:
        return True
    return False

class UserRoles(BaseModel):
  user         = ForeignKeyField(User, backref='user_roles_set')
  role         = ForeignKeyField(Role, backref='role_users_set')
  name         = property(lambda self: self.role.name)
  description  = property(lambda self: self.role.description)


MODELS = [Album, Image, Role, User, UserRoles]
