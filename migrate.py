#!/usr/bin/env python3
"""
Database migration script for Milk Collection Center
Run: python migrate.py
"""

import sys

from sqlalchemy.exc import SQLAlchemyError

from app import create_app, create_default_admin
from models import db, DairyCenter, Farmer, MilkEntry, User


def run_migrations(app=None):
    """Create tables and the default super admin, then print database stats"""
    app = app or create_app()
    with app.app_context():
        try:
            print("Creating database tables...")
            db.create_all()
            print("✓ Database tables created successfully")

            if create_default_admin():
                print(f"✓ Default admin created: {app.config['ADMIN_EMAIL']}")
            else:
                print("✓ Admin user already exists")

            print("\n✅ Database migration completed successfully!")

            stats = {
                "Dairy centers": DairyCenter.query.count(),
                "Users": User.query.count(),
                "Farmers": Farmer.query.count(),
                "Milk entries": MilkEntry.query.count(),
            }
            print("\nDatabase Statistics:")
            for label, count in stats.items():
                print(f"  {label}: {count}")
            return stats

        except SQLAlchemyError as e:
            print(f"❌ Error during migration: {str(e)}")
            sys.exit(1)


if __name__ == '__main__':
    run_migrations()
