"""Catalog read path. Products are owned by the catalog; the cart only snapshots them."""
import structlog
from pydantic import ValidationError

from .database import PRODUCTS, DocumentStore
from .results import Result, StoreError, Success, parse_failure, remote_failure
from .schemas import Product

logger = structlog.get_logger(__name__)


class CatalogService:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def fetch_products(self) -> Result:
        logger.debug("catalog.fetch_products")
        try:
            docs = await self.store.query(PRODUCTS)
        except StoreError as e:
            logger.error("catalog.fetch_products.failed", error=str(e))
            return remote_failure(e)

        products = []
        for doc in docs:
            try:
                products.append(Product.model_validate(doc))
            except ValidationError as e:
                logger.warning("catalog.product.unparseable", product_id=doc.get("id"), error=str(e))
        logger.debug("catalog.fetch_products.ok", count=len(products))
        return Success(value=products)

    async def fetch_product(self, product_id: str) -> Result:
        """``Success(None)`` means the product does not exist."""
        logger.debug("catalog.fetch_product", product_id=product_id)
        try:
            doc = await self.store.get(PRODUCTS, product_id)
        except StoreError as e:
            logger.error("catalog.fetch_product.failed", product_id=product_id, error=str(e))
            return remote_failure(e)
        if doc is None:
            return Success(value=None)
        try:
            return Success(value=Product.model_validate(doc))
        except ValidationError:
            logger.warning("catalog.product.unparseable", product_id=product_id)
            return parse_failure(f"Malformed product document: {product_id}")
