"""seed default achievement catalogue

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-12

Inserts app.services.catalogue.DEFAULT_ACHIEVEMENTS. Re-running is a
no-op: achievements are matched by their unique name. Downgrade removes
only the seeded names (criteria cascade).
"""
from alembic import op
from sqlalchemy.orm import Session

from app.services.catalogue import DEFAULT_ACHIEVEMENTS, seed_achievements

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    session = Session(bind=op.get_bind())
    seed_achievements(session)


def downgrade() -> None:
    names = ", ".join(f"'{name}'" for name, _, _, _ in DEFAULT_ACHIEVEMENTS)
    op.execute(f"DELETE FROM achievement_criteria WHERE achievement_id IN "
               f"(SELECT id FROM achievements WHERE name IN ({names}))")
    op.execute(f"DELETE FROM achievements WHERE name IN ({names})")
