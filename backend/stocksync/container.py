# Overview: Composition root; builds every service once and wires them in dependency order.

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from .services.cache_service import LocalCache
from .services.catalog_service import LocationRegistry, LookupCatalog, ProductCatalog
from .services.connectivity import ConnectivityContext
from .services.deliverables_service import PendingDeliverables
from .services.document_numbers import DocumentNumberGenerator
from .services.document_store import DocumentStore
from .services.history_service import ItemHistory
from .services.import_service import ProductImporter
from .services.inventory_service import InventoryLedger
from .services.order_service import PurchaseInvoiceBook, SalesOrderBook
from .services.party_service import CustomerDirectory, SupplierDirectory
from .services.receivables_service import PendingReceivables
from .services.reconciliation_service import ReconciliationDesk
from .services.sync_service import CollectionSync

logger = logging.getLogger(__name__)

EXTENSION_KEY = "stocksync"


@dataclass
class ServiceContainer:
    connectivity: ConnectivityContext
    store: DocumentStore
    cache: LocalCache
    numbers: DocumentNumberGenerator
    lookups: LookupCatalog
    locations: LocationRegistry
    products: ProductCatalog
    inventory: InventoryLedger
    customers: CustomerDirectory
    suppliers: SupplierDirectory
    sales_orders: SalesOrderBook
    deliverables: PendingDeliverables
    purchase_invoices: PurchaseInvoiceBook
    receivables: PendingReceivables
    history: ItemHistory
    reconciliation: ReconciliationDesk
    importer: ProductImporter

    def collections(self) -> list[CollectionSync]:
        return [
            self.lookups,
            self.locations,
            self.products,
            self.inventory,
            self.customers,
            self.suppliers,
            self.sales_orders,
            self.deliverables,
            self.purchase_invoices,
            self.receivables,
            self.history,
        ]

    def sync_status(self) -> dict:
        return {
            sync.collection: {
                "items": len(sync.items),
                "is_loading": sync.is_loading,
                "subscribed": sync.is_subscribed,
                "error": sync.error.message if sync.error else None,
            }
            for sync in self.collections()
        }

    def close(self) -> None:
        self.reconciliation.close()
        for sync in self.collections():
            sync.close()


def build_services(config) -> ServiceContainer:
    """
    Wire the service graph.

    Collections register their connectivity listeners as they are built,
    so construction order is the order they load in: lookups and locations
    before products, products before inventory and documents.
    """
    connectivity = ConnectivityContext(
        tenant_id=config["TENANT_ID"],
        online=config.get("START_ONLINE", True),
    )
    store = DocumentStore(retry_attempts=config.get("COUNTER_RETRY_ATTEMPTS", 3))
    cache = LocalCache()
    deps = {"connectivity": connectivity, "store": store, "cache": cache}

    numbers = DocumentNumberGenerator(connectivity=connectivity, store=store)
    lookups = LookupCatalog(**deps)
    locations = LocationRegistry(**deps)
    products = ProductCatalog(**deps)
    inventory = InventoryLedger(**deps)
    customers = CustomerDirectory(numbers=numbers, **deps)
    suppliers = SupplierDirectory(numbers=numbers, **deps)
    tax_rate = config.get("TAX_RATE", 0.18)
    sales_orders = SalesOrderBook(numbers=numbers, tax_rate=tax_rate, **deps)
    purchase_invoices = PurchaseInvoiceBook(numbers=numbers, tax_rate=tax_rate, **deps)
    receivables = PendingReceivables(**deps)
    deliverables = PendingDeliverables(**deps)
    history = ItemHistory(sales_orders=sales_orders, purchase_invoices=purchase_invoices, **deps)

    reconciliation = ReconciliationDesk(
        connectivity=connectivity,
        store=store,
        invoices=purchase_invoices,
        receivables=receivables,
    )
    importer = ProductImporter(connectivity=connectivity, store=store, products=products, lookups=lookups)

    logger.debug("Service graph built for tenant %s", connectivity.tenant_id)
    return ServiceContainer(
        connectivity=connectivity,
        store=store,
        cache=cache,
        numbers=numbers,
        lookups=lookups,
        locations=locations,
        products=products,
        inventory=inventory,
        customers=customers,
        suppliers=suppliers,
        sales_orders=sales_orders,
        deliverables=deliverables,
        purchase_invoices=purchase_invoices,
        receivables=receivables,
        history=history,
        reconciliation=reconciliation,
        importer=importer,
    )


def get_services() -> ServiceContainer:
    return current_app.extensions[EXTENSION_KEY]
