"""
Transport Tracker - Database Setup Script
Initializes the database and creates the first admin account.
"""

import os
import sys

# Set base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
os.environ.setdefault('BASE_DIR', BASE_DIR)

# Add to path
sys.path.insert(0, BASE_DIR)

DEFAULT_ADMIN_USERNAME = os.getenv('DEFAULT_ADMIN_USERNAME', 'admin')
DEFAULT_ADMIN_PASSWORD = os.getenv('DEFAULT_ADMIN_PASSWORD')


def main():
    print("=" * 60)
    print("Transport Tracker - Database Setup")
    print("=" * 60)

    # Step 1: Initialize database
    print("\n[Step 1] Initializing database schema...")
    from database.db import init_database, create_user, get_user_by_username
    init_database()
    print("Database initialized successfully!")

    # Step 2: Seed admin account
    print("\n[Step 2] Creating admin account...")
    from dashboard.auth import hash_password

    if get_user_by_username(DEFAULT_ADMIN_USERNAME):
        print(f"   - Admin '{DEFAULT_ADMIN_USERNAME}' already exists, skipping")
    elif not DEFAULT_ADMIN_PASSWORD:
        print("   - DEFAULT_ADMIN_PASSWORD not set, skipping")
    else:
        user_id = create_user(
            name='Administrator',
            username=DEFAULT_ADMIN_USERNAME,
            password_hash=hash_password(DEFAULT_ADMIN_PASSWORD),
            role='admin',
        )
        print(f"   - Created admin '{DEFAULT_ADMIN_USERNAME}' (id {user_id})")

    print("\n" + "=" * 60)
    print("Setup Complete!")
    print("=" * 60)
    print("\nNext steps:")
    print("  1. Run 'python run_server.py' to start the API")
    print("  2. Sign in at /api/auth/login and add drivers via /api/admin/users")


if __name__ == '__main__':
    main()
