# variable_editor/infrastructure/database/template_store.py
import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from variable_editor.domain.models import ExportSchema
from variable_editor.infrastructure.database.models import TemplateRecord

logger = logging.getLogger(__name__)


class SqlTemplateStore:
    """Templates keyed by project id, one JSON document per project."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def get(self, project_id: str) -> Optional[ExportSchema]:
        async with self.session_factory() as session:
            record = await session.get(TemplateRecord, project_id)
            if record is None:
                logger.info(f"No template stored for projectId: {project_id}")
                return None
            return ExportSchema.model_validate(record.schema)

    async def save(self, project_id: str, template: ExportSchema) -> None:
        async with self.session_factory() as session:
            record = await session.get(TemplateRecord, project_id)
            if record is None:
                session.add(TemplateRecord(project_id=project_id, schema=template.to_document()))
            else:
                record.schema = template.to_document()
            await session.commit()
        logger.info(f"Stored template for projectId: {project_id}")
