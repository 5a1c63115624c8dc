# provisioning/database/base.py
"""
SQLAlchemy declarative base shared by all provisioning models.
"""

from sqlalchemy.orm import declarative_base

# Declarative base for all models
Base = declarative_base()
