"""Create documents table

Revision ID: a7c3e91f0b24
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "a7c3e91f0b24"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the single ``documents`` table holding every collection."""
    op.create_table(
        "documents",
        sa.Column("collection", sa.String(500), primary_key=True),
        sa.Column("id", sa.String(200), primary_key=True),
        sa.Column(
            "data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("modified", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_documents_collection_modified", "documents", ["collection", "modified"]
    )


def downgrade() -> None:
    op.drop_index("ix_documents_collection_modified", table_name="documents")
    op.drop_table("documents")
