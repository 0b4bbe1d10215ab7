#!/usr/bin/env python3
"""
Script to create an initial admin user for the agency manager
"""
import os

from app import app, db
from models import User

def create_admin_user(email=None, password=None):
    email = (email or os.environ.get('ADMIN_EMAIL', 'admin@agency.local')).strip().lower()
    password = password or os.environ.get('ADMIN_PASSWORD', 'admin123')

    with app.app_context():
        # Check if admin already exists
        existing_admin = User.query.filter_by(role='Admin').first()
        if existing_admin:
            print(f"Admin user already exists: {existing_admin.email}")
            return existing_admin

        admin = User(
            user_id=User.next_user_id(),
            name='Administrator',
            email=email,
            role='Admin',
            status='Active'
        )
        admin.set_password(password)

        db.session.add(admin)
        db.session.commit()

        print("Admin user created successfully!")
        print(f"Email: {email}")
        print("Role: Admin")
        return admin

if __name__ == '__main__':
    create_admin_user()
