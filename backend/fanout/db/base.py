"""
Declarative base shared by all models (Alembic reads Base.metadata).
"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()
