"""
Companion REST backend.

A thin CRUD service over SQLite. The voice client replicates its local
mutations here best-effort; nothing on the client depends on it.
"""

from typing import Optional

from fastapi import FastAPI

from vozfinancas.api.routes import router
from vozfinancas.audit import AuditLogger
from vozfinancas.services.storage import Database, SQLiteAuditStorage, create_database


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        database: Initialized database. Uses SERVER_DATABASE_URL if not provided.
    """
    database = database or create_database()
    audit_storage = SQLiteAuditStorage(database)

    app = FastAPI(title="VozFinanças API", version="1.0.0")
    app.state.database = database
    app.state.audit_storage = audit_storage
    app.state.audit_logger = AuditLogger(audit_storage)
    app.include_router(router)
    return app
