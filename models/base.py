# models/base.py
import re

from sqlalchemy import Column, DateTime, func
from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
     """Declarative base; tables are named after the model in plural snake_case."""

     @declared_attr.directive
     def __tablename__(cls) -> str:
          # Invoice -> invoices
          return re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower() + 's'


class TimestampMixin:
     """created_at is written once; updated_at advances on every UPDATE."""

     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(
          DateTime,
          server_default=func.now(),
          onupdate=func.now(),
          nullable=False,
     )
