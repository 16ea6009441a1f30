from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class DatabaseModel(Base):
    __tablename__ = "databases"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True)
    name = Column(String)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)


class ColumnModel(Base):
    __tablename__ = "database_columns"

    id = Column(String, primary_key=True)
    database_id = Column(String, index=True)
    name = Column(String)
    type = Column(String)
    is_unique = Column(Boolean, default=False)
    order = Column(Integer)
    created_at = Column(DateTime(timezone=True))


class RowModel(Base):
    __tablename__ = "database_rows"

    id = Column(String, primary_key=True)
    database_id = Column(String, index=True)
    data_json = Column(Text)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)


class FormModel(Base):
    __tablename__ = "forms"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True)
    name = Column(String)
    fields_json = Column(Text)
    header_config = Column(Text)
    footer_config = Column(Text)
    is_published = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)


class SubmissionModel(Base):
    __tablename__ = "form_submissions"

    id = Column(String, primary_key=True)
    form_id = Column(String, index=True)
    data_json = Column(Text)
    created_at = Column(DateTime(timezone=True))
