"""ragdesk database layer."""

from ragdesk.db.connection import Database
from ragdesk.db.migrations import MIGRATIONS, run_migrations
from ragdesk.db.repository import Repository
from ragdesk.db.schema import initialize
from ragdesk.db.vectors import ensure_vec_table, model_to_slug, vec_table_for_model, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_for_model",
    "vec_table_name",
]
