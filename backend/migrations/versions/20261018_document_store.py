"""Document store: tenant-scoped JSON documents

Revision ID: 20261018_document_store
Revises:
Create Date: 2026-10-18 09:00:00.000000

The local cache lives on the separate "cache" bind and is created with
`flask stocksync init-db`; it is never migrated (it can always be rebuilt
from the next online snapshot).
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_document_store"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stored_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("collection", sa.String(length=64), nullable=False),
        sa.Column("doc_id", sa.String(length=128), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "collection", "doc_id", name="uq_documents_tenant_collection_doc"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stored_documents", schema=None) as batch_op:
        batch_op.create_index("ix_stored_documents_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_documents_tenant_collection", ["tenant_id", "collection"], unique=False)


def downgrade():
    with op.batch_alter_table("stored_documents", schema=None) as batch_op:
        batch_op.drop_index("ix_documents_tenant_collection")
        batch_op.drop_index("ix_stored_documents_tenant_id")
    op.drop_table("stored_documents")
