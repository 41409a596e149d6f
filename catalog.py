"""
Product catalog and customer reviews.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from pymongo.database import Database

import metrics
from database import create_document, get_documents, now, parse_object_id, serialize_doc
from errors import NotFoundError
from schemas import Product as ProductSchema, Review as ReviewSchema

logger = logging.getLogger("velora.catalog")

SORT_OPTIONS = {
    "price-low": [("price", 1), ("_id", 1)],
    "price-high": [("price", -1), ("_id", -1)],
    "newest": [("created_at", -1), ("_id", -1)],
}
DEFAULT_SORT = "newest"


# ----------------------- Products -----------------------
def build_product_filter(
    category: Optional[str] = None,
    gender: Optional[str] = None,
    search: Optional[str] = None,
    featured: Optional[bool] = None,
    new_arrivals: Optional[bool] = None,
) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if category:
        filt["category"] = category
    if gender:
        filt["gender"] = gender
    if featured:
        filt["is_featured"] = True
    if new_arrivals:
        filt["is_new_arrival"] = True
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"description": pattern}]
    return filt


def list_products(db: Database, filt: Dict[str, Any], sort: Optional[str] = None) -> List[dict]:
    order = SORT_OPTIONS.get(sort or DEFAULT_SORT, SORT_OPTIONS[DEFAULT_SORT])
    products = [serialize_doc(p) for p in get_documents(db, "product", filt, sort=order)]
    logger.info("Retrieved %d products", len(products))
    return products


def _load_product(db: Database, product_id: str) -> Dict[str, Any]:
    product = db["product"].find_one({"_id": parse_object_id(product_id, "Product not found")})
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_product(db: Database, product_id: str) -> dict:
    product = _load_product(db, product_id)
    metrics.products_viewed_total.labels(product_id=product_id).inc()
    return serialize_doc(product)


def create_product(db: Database, product: ProductSchema) -> dict:
    product_id = create_document(db, "product", product)
    logger.info("Product created: %s (ID: %s)", product.name, product_id)
    return get_product_doc(db, product_id)


def get_product_doc(db: Database, product_id: str) -> dict:
    return serialize_doc(_load_product(db, product_id))


def update_product(db: Database, product_id: str, patch: Dict[str, Any]) -> dict:
    product = _load_product(db, product_id)
    if patch:
        db["product"].update_one({"_id": product["_id"]}, {"$set": {**patch, "updated_at": now()}})
    updated = get_product_doc(db, product_id)
    logger.info("Product updated: %s", updated["name"])
    return updated


def delete_product(db: Database, product_id: str) -> dict:
    product = _load_product(db, product_id)
    db["product"].delete_one({"_id": product["_id"]})
    logger.info("Product deleted: %s", product["name"])
    return {"message": "Product removed"}


# ----------------------- Reviews -----------------------
def create_review(db: Database, review: ReviewSchema) -> dict:
    review_id = create_document(db, "review", review)
    logger.info("Review created: %s", review_id)
    return serialize_doc(db["review"].find_one({"_id": parse_object_id(review_id, "Review not found")}))


def list_recent_reviews(db: Database, limit: int = 10) -> List[dict]:
    reviews = get_documents(db, "review", {}, sort=[("created_at", -1), ("_id", -1)], limit=limit)
    result = []
    for r in reviews:
        doc = serialize_doc(r)
        if r.get("user"):
            try:
                user = db["user"].find_one({"_id": parse_object_id(r["user"], "User not found")}, {"name": 1})
            except NotFoundError:
                user = None
            doc["user"] = {"id": r["user"], "name": user.get("name") if user else None}
        result.append(doc)
    logger.info("Retrieved %d reviews", len(result))
    return result
