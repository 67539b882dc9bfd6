from __future__ import annotations

from ..extensions import db


class CachePartition(db.Model):
    """
    Local cache partition (offline source of truth for one collection).

    Lives in the "cache" bind, which is a separate database from the
    remote document store. One row per partition name; value holds the
    last observed collection snapshot verbatim.
    """
    __bind_key__ = "cache"
    __tablename__ = "cache_partitions"

    partition = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<CachePartition {self.partition!r}>"
