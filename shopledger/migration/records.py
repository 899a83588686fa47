"""Typed reads of the products and bills collections."""

from shopledger.models.shop import Bill, Collection, Product
from shopledger.services.storage import DocumentStoreInterface


async def load_products(store: DocumentStoreInterface) -> list[Product]:
    records = await store.get_all(Collection.PRODUCTS.value)
    return [Product.model_validate(record) for record in records]


async def load_bills(store: DocumentStoreInterface) -> list[Bill]:
    records = await store.get_all(Collection.BILLS.value)
    return [Bill.model_validate(record) for record in records]
