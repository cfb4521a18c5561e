"""
Web App Configuration
Centralized settings for the Laptop Grading System web application.
Values come from the environment (a local .env file is loaded if present).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# SQLite fallback lives in ./data relative to the working directory
DATA_DIR = os.path.join(os.getcwd(), 'data')

# Web app settings
SECRET_KEY = os.environ.get('SESSIONSECRET', 'dev-secret-change-me')
PORT = int(os.environ.get('PORT', '8080'))

# Database (any SQLAlchemy URL; Postgres in production)
DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///' + os.path.join(DATA_DIR, 'lgs.db'))
DB_POOL_SIZE = 1  # serverless-friendly

# Initial admin account, created on startup when both are set
INITIAL_ADMIN_USER = os.environ.get('INITIAL_ADMIN_USER', '')
INITIAL_ADMIN_PASS = os.environ.get('INITIAL_ADMIN_PASS', '')

# Session lifetime
SESSION_DURATION = 2 * 60 * 60  # seconds
SESSION_ACTIVE_DURATION = 5 * 60  # extension granted on activity near expiry

# Query caps
PROJECT_GRADES_LIMIT = 1000
USER_GRADES_LIMIT = 500
ADMIN_GRADES_LIMIT = 2000
