from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, or_, select

from craftsync.data.migrations import MigrationManager
from craftsync.data.sync_repository import SyncRepository
from craftsync.models.project import Project, ProjectStatus


class ProjectRepository(SyncRepository[Project]):
    def __init__(self, engine: Engine, schema_gate: MigrationManager, auth=None):
        super().__init__(Project, engine, schema_gate, auth)

    def search(self, query_text: str = "", owner_id: Optional[str] = None) -> List[Project]:
        """Search by title, description or notes"""
        self._require_schema()
        statement = select(Project).where(Project.deleted_at == None)
        if owner_id is not None:
            statement = statement.where(Project.owner_id == owner_id)

        if query_text:
            search_pattern = f"%{query_text}%"
            statement = statement.where(
                or_(
                    Project.title.like(search_pattern),
                    Project.description.like(search_pattern),
                    Project.notes.like(search_pattern),
                )
            )

        statement = statement.order_by(Project.title)
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def list_by_status(self, status: ProjectStatus) -> List[Project]:
        self._require_schema()
        statement = (
            select(Project)
            .where(Project.deleted_at == None)
            .where(Project.status == ProjectStatus(status).value)
            .order_by(Project.updated_at.desc())
        )
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def currently_working_on(self) -> List[Project]:
        self._require_schema()
        statement = (
            select(Project)
            .where(Project.deleted_at == None)
            .where(Project.currently_working_on == True)
        )
        with Session(self.engine) as session:
            return list(session.exec(statement).all())
