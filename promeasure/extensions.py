"""
promeasure/extensions.py

Flask extension singletons (database + migrations).

Bound to the app in create_app(); models and services import `db` from here
so nothing imports the app factory itself.
"""

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
