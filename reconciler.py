import logging
from typing import Optional, Dict, Any, Iterator, List, Sequence

from schemas import MirroredOrder, MirroredProduct, ResourceKind, SyncRunResult

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _remote_id(record: Dict[str, Any]) -> str:
    if not isinstance(record, dict) or record.get("id") in (None, ""):
        raise ValueError("remote record has no id")
    return str(record["id"])


def customer_display_name(customer: Any) -> Optional[str]:
    """Combined name wins; "first last" only when both parts are present."""
    if not isinstance(customer, dict):
        return None
    if customer.get("name"):
        return customer["name"]
    first, last = customer.get("first_name"), customer.get("last_name")
    if first and last:
        return f"{first} {last}"
    return None


def product_image_url(product: Dict[str, Any]) -> Optional[str]:
    for field in ("image_url", "imageUrl", "image"):
        if isinstance(product.get(field), str) and product[field]:
            return product[field]
    images = product.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict):
        return images[0].get("image_url") or images[0].get("url")
    return None


def project_order(installation_id: str, order: Dict[str, Any]) -> MirroredOrder:
    remote_id = _remote_id(order)
    customer = order.get("customer")
    items_count = order.get("items_count")
    return MirroredOrder(
        installation_id=installation_id,
        remote_id=remote_id,
        order_number=_text(order.get("order_number")),
        amount=_text(order.get("amount")),
        status=_text(order.get("status")),
        customer_email=customer.get("email") if isinstance(customer, dict) else None,
        customer_name=customer_display_name(customer),
        items_count=int(items_count) if items_count is not None else None,
        data=order,
    )


def project_product(installation_id: str, product: Dict[str, Any]) -> MirroredProduct:
    remote_id = _remote_id(product)
    return MirroredProduct(
        installation_id=installation_id,
        remote_id=remote_id,
        title=_text(product.get("title")),
        sku=_text(product.get("sku")),
        description=_text(product.get("description")),
        image_url=product_image_url(product),
        status=_text(product.get("status")),
        price=_text(product.get("price")),
        in_stock=product.get("in_stock") if product.get("in_stock") is not None else True,
        public=product.get("public") if product.get("public") is not None else True,
        data=product,
    )


PROJECTIONS = {
    ResourceKind.PRODUCTS: project_product,
    ResourceKind.ORDERS: project_order,
}


def chunked(records: Sequence[Any], size: int) -> Iterator[List[Any]]:
    for start in range(0, len(records), size):
        yield list(records[start:start + size])


class Reconciler:
    """
    Writes an already fully fetched record set into the mirror store, one
    upsert per batch.

    `store` needs a single method, upsert_batch(kind, rows), which must raise
    when the batch was not written. A failed batch is counted as errors and
    skipped; it is never retried and never aborts the remaining batches.
    """

    def __init__(self, store, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.batch_size = batch_size

    def reconcile(self, installation_id: str, kind: ResourceKind, records: Sequence[Any]) -> SyncRunResult:
        if not installation_id:
            raise ValueError("installation_id is required")

        project = PROJECTIONS[kind]
        result = SyncRunResult()
        total_batches = -(-len(records) // self.batch_size)

        for number, batch in enumerate(chunked(records, self.batch_size), start=1):
            try:
                rows = [project(installation_id, record) for record in batch]
                self.store.upsert_batch(kind, rows)
            except Exception:
                logger.exception("Error syncing batch %d/%d of %d %s for installation %s",
                                 number, total_batches, len(batch), kind.value, installation_id)
                result.errors += len(batch)
            else:
                result.synced += len(batch)

        return result
