#!/usr/bin/env python3
"""
Build script for deployment.
This script creates the tables, seeds the grading scale and the default admin.
"""
import os

from app import create_app, initialize_database

if __name__ == "__main__":
    app = create_app(os.environ.get('APP_ENV', 'production'))
    print("Creating database tables and seed data...")
    initialize_database(app)
    print("Database initialization completed successfully!")
