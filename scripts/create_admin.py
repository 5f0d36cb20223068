#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Create an admin user for the gallery

Admins log in through Flask-Security and bypass every album gate
(password and NSFW). The password is stored bcrypt-hashed.
"""

import sys
import os
import getpass
import uuid
import bcrypt

# Add parent directory to path so we can import app modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app
from db import db, Role, User, UserRoles

def ensure_admin_role():
    admin_role = Role.get_or_none(Role.name == 'admin')
    if not admin_role:
        print("Creating 'admin' role...")
        admin_role = Role.create(name='admin', description='Administrator, bypasses album gates')
    return admin_role

def prompt_password():
    while True:
        password = getpass.getpass("Password: ")
        password_confirm = getpass.getpass("Confirm password: ")
        if not password:
            print("Password is required")
            continue
        if password != password_confirm:
            print("Passwords don't match, try again")
            continue
        return password

def create_admin():
    """Create admin user interactively"""
    print("=" * 60)
    print("Gallery Admin User Creation")
    print("=" * 60)
    print()

    if not app.config.get('SECURITY_PASSWORD_SALT'):
        print("ERROR: SECURITY_PASSWORD_SALT is not set")
        print("   Generate one with: python -c 'import secrets; print(secrets.token_hex(32))'")
        sys.exit(1)

    db.connect(reuse_if_open=True)
    admin_role = ensure_admin_role()

    email = input("Admin email: ").strip()
    if not email:
        print("Email is required")
        sys.exit(1)

    user = User.get_or_none(User.email == email)
    if user:
        response = input("User '{}' already exists. Make them an admin? [y/N]: ".format(email))
        if response.lower() != 'y':
            sys.exit(0)
    else:
        password = prompt_password()
        # bcrypt hash, the format Flask-Security expects with SECURITY_PASSWORD_HASH='bcrypt'
        password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')
        user = User.create(
            email=email,
            password=password_hash,
            active=True,
            fs_uniquifier=str(uuid.uuid4()),
        )
        print("User created: {}".format(email))

    if not UserRoles.get_or_none((UserRoles.user == user) & (UserRoles.role == admin_role)):
        UserRoles.create(user=user, role=admin_role)
        print("Admin role assigned")
    else:
        print("User already has admin role")

    db.close()
    print()
    print("You can now login at: /login")

if __name__ == '__main__':
    try:
        create_admin()
    except KeyboardInterrupt:
        print("\n\nCancelled")
        sys.exit(1)
