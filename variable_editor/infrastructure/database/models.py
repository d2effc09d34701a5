from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class TemplateRecord(Base):
    __tablename__ = "template_schema"

    project_id = Column(String, primary_key=True)
    schema = Column(JSON, nullable=False)  # ExportSchema as written by the editor (camelCase keys)
    create_time = Column(DateTime(timezone=True), default=_utcnow)
    update_time = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
