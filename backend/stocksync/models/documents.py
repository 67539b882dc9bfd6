from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StoredDocument(db.Model):
    """
    One document of a tenant-scoped remote collection.

    MULTI-TENANT: every collection lives under a tenant namespace; the
    (tenant_id, collection, doc_id) triple addresses exactly one document.

    DESIGN:
    - data holds the document body as JSON (the API never sees the row id)
    - created row order is the snapshot order of a collection
    - version_id enables optimistic locking for transactional
      read-modify-write (counters, invoice finalize)
    """
    __tablename__ = "stored_documents"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "collection", "doc_id", name="uq_documents_tenant_collection_doc"),
        db.Index("ix_documents_tenant_collection", "tenant_id", "collection"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    collection = db.Column(db.String(64), nullable=False)
    doc_id = db.Column(db.String(128), nullable=False)

    data = db.Column(db.JSON, nullable=False, default=dict)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StoredDocument {self.tenant_id}/{self.collection}/{self.doc_id} v{self.version_id}>"

    def to_snapshot_entry(self) -> dict:
        entry = {"id": self.doc_id}
        entry.update(self.data or {})
        return entry

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "collection": self.collection,
            "doc_id": self.doc_id,
            "data": self.data,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
