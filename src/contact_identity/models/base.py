"""Declarative base for Contact Identity models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
