# Overview: Customers and suppliers with generated, never-reused display ids.

from __future__ import annotations

import logging

from ..time_utils import now_z
from ..validation import EntitySchema, FieldSpec, validate_payload
from .cache_service import CUSTOMERS_PARTITION, SUPPLIERS_PARTITION
from .document_numbers import CUSTOMER_COUNTER, SUPPLIER_COUNTER, DocumentNumberGenerator
from .sync_service import CrudCollectionSync

logger = logging.getLogger(__name__)


CUSTOMERS_COLLECTION = "customers"
SUPPLIERS_COLLECTION = "suppliers"

PRICE_TYPES = ("Retail", "Wholesale")

_CONTACT_FIELDS = (
    FieldSpec("name", required=True, max_length=200),
    FieldSpec("phone", max_length=40, default=""),
    FieldSpec("secondaryContact", max_length=40, default=""),
    FieldSpec("email", max_length=200, default=""),
    FieldSpec("address", max_length=1000, default=""),
    FieldSpec("notes", max_length=2000, default=""),
)

CUSTOMER_SCHEMA = EntitySchema(
    entity="customer",
    fields=_CONTACT_FIELDS + (
        FieldSpec("cnic", max_length=40, default=""),
        FieldSpec("priceType", choices=PRICE_TYPES, default="Retail"),
    ),
)

SUPPLIER_SCHEMA = EntitySchema(
    entity="supplier",
    fields=_CONTACT_FIELDS + (
        FieldSpec("contactPerson", max_length=200, default=""),
        FieldSpec("priceType", choices=PRICE_TYPES, default="Wholesale"),
    ),
)


class PartyDirectory(CrudCollectionSync):
    """
    Shared behaviour of customers and suppliers.

    displayId ("CUS-001", "SUP-014") comes from a non-periodic counter and
    is written together with the new document, so it is assigned exactly
    once and never changes afterwards.
    """

    schema: EntitySchema
    counter_name: str
    display_prefix: str

    def __init__(self, *, numbers: DocumentNumberGenerator, **kwargs):
        self.numbers = numbers
        super().__init__(**kwargs)

    def prepare_create(self, data: dict) -> dict:
        return validate_payload(schema=self.schema, payload=data, partial=False)

    def prepare_update(self, doc_id: str, data: dict) -> dict:
        return validate_payload(schema=self.schema, payload=data, partial=True)

    def create(self, data: dict) -> str:
        self.connectivity.require_online(f"add {self.entity_label}")
        payload = self.prepare_create(data)
        stamp = now_z()
        payload.update({"createdAt": stamp, "updatedAt": stamp})
        doc_id, display_id = self.numbers.create_numbered(
            self.collection,
            payload,
            number_field="displayId",
            counter_name=self.counter_name,
            prefix=self.display_prefix,
            label=f"{self.entity_label} ID",
        )
        logger.info("%s %s created as %s", self.entity_label.capitalize(), doc_id, display_id)
        return doc_id

    def find_by_display_id(self, display_id: str) -> dict | None:
        for party in self.items:
            if party.get("displayId") == display_id:
                return party
        return None


class CustomerDirectory(PartyDirectory):
    collection = CUSTOMERS_COLLECTION
    cache_partition = CUSTOMERS_PARTITION
    entity_label = "customer"
    schema = CUSTOMER_SCHEMA
    counter_name = CUSTOMER_COUNTER
    display_prefix = "CUS"


class SupplierDirectory(PartyDirectory):
    collection = SUPPLIERS_COLLECTION
    cache_partition = SUPPLIERS_PARTITION
    entity_label = "supplier"
    schema = SUPPLIER_SCHEMA
    counter_name = SUPPLIER_COUNTER
    display_prefix = "SUP"
