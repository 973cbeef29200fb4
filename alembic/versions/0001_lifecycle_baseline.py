"""lifecycle baseline: projects, quotes, payments, assignments, qc, timers, ledger

Revision ID: 0001_lifecycle_baseline
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations

from alembic import op

from assignx.db.base import Base
import assignx.models  # noqa: F401

revision = "0001_lifecycle_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Tables, partial unique indexes and the projects.version column all
    # come from the model metadata at this revision.
    Base.metadata.create_all(bind=op.get_bind())


def downgrade():
    Base.metadata.drop_all(bind=op.get_bind())
