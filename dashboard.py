"""
Admin console aggregates and user management.
"""
import logging
from typing import List

from pymongo.database import Database

from database import parse_object_id, serialize_doc
from errors import NotFoundError, ValidationError
from orders import NEWEST_FIRST, with_owner

logger = logging.getLogger("velora.admin")

RECENT_ORDERS = 5


def get_dashboard_stats(db: Database) -> dict:
    total_users = db["user"].count_documents({"role": "customer"})
    total_orders = db["order"].count_documents({})
    total_products = db["product"].count_documents({})

    # recomputed from a full scan on every call
    total_revenue = sum(o.get("total_price", 0) or 0 for o in db["order"].find({}, {"total_price": 1}))

    recent = db["order"].find({}).sort(NEWEST_FIRST).limit(RECENT_ORDERS)
    recent_orders = [with_owner(db, o) for o in recent]

    logger.info(
        "Stats retrieved: %d users, %d orders, $%.2f revenue", total_users, total_orders, total_revenue
    )
    return {
        "total_users": total_users,
        "total_orders": total_orders,
        "total_products": total_products,
        "total_revenue": total_revenue,
        "recent_orders": recent_orders,
    }


def list_users(db: Database) -> List[dict]:
    users = db["user"].find({}, {"password_hash": 0}).sort([("created_at", -1), ("_id", -1)])
    result = [serialize_doc(u) for u in users]
    logger.info("Retrieved %d users", len(result))
    return result


def delete_user(db: Database, user_id: str) -> dict:
    user = db["user"].find_one({"_id": parse_object_id(user_id, "User not found")})
    if not user:
        raise NotFoundError("User not found")
    if user.get("role") == "admin":
        logger.warning("Refused to delete admin user: %s", user["email"])
        raise ValidationError("Cannot delete admin user")
    db["user"].delete_one({"_id": user["_id"]})
    logger.info("User deleted: %s", user["email"])
    return {"message": "User removed"}
