from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine

from src.notesynth.config import settings
from src.notesynth.infra.db.models import Base
from src.notesynth.infra.db.session import create_sqlalchemy_session_factory
from src.notesynth.infra.db.sql_notes import SqlPatientViewRepository, SqlProviderNoteRepository
from src.notesynth.infra.db import inmemory as inmemory_repos

logger = logging.getLogger("notesynth.db")


def init_sql_repositories(database_url: Optional[str] = None, *, force: bool = False) -> bool:
    """Optionally switch the note and patient-view stores to SQL.

    No-op unless USE_SQL_REPOS is enabled (or ``force`` is passed) and a
    database URL is available. Returns True when the SQL repositories were
    wired in.
    """

    if not (settings.use_sql_repos or force):
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is set but DATABASE_URL is empty; keeping in-memory repositories")
        return False

    engine = create_engine(db_url, future=True)

    # Create tables if they do not exist. Real deployments should use
    # migrations instead.
    Base.metadata.create_all(engine)

    session_factory = create_sqlalchemy_session_factory(db_url)
    notes = SqlProviderNoteRepository(session_factory)
    views = SqlPatientViewRepository(session_factory)

    inmemory_repos.provider_note_repository = notes  # type: ignore[assignment]
    inmemory_repos.patient_view_repository = views  # type: ignore[assignment]

    # Services captured the in-memory singletons at import time.
    from src.notesynth.services.notes.service import note_service

    note_service.bind_repositories(notes=notes, views=views)
    logger.info("SQL repositories enabled")
    return True
