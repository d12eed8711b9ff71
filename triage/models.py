"""
SQLAlchemy ORM models for database tables.

The engine persists whole collections as opaque text blobs keyed by name
(records and the allow-list live under separate keys).
For domain types see records.py; for API schemas see schemas.py.
"""

from sqlalchemy import Column, String, Text

from triage.storage import Base


class KeyValueEntry(Base):
    """
    One persisted blob.

    Table: kv_store
    Primary Key: key
    """
    __tablename__ = "kv_store"

    key = Column(String, primary_key=True, index=True)
    value = Column(Text, nullable=False)
    updated_at = Column(String, nullable=False)  # Server time ISO-8601
