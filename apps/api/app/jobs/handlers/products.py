"""Product analysis job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


async def process_analyze_product(db, job) -> None:
    """Fetch the product website and generate brand guidelines."""
    from app.services import product_service

    product_id = job.payload.get("product_id") if job.payload else None
    if not product_id:
        raise ValueError("Missing product_id in analyze_product payload")

    product = await product_service.analyze_product(db, UUID(str(product_id)))
    logger.info("Product %s analyzed (type=%s)", product.id, product.product_type)
