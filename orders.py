"""
Order lifecycle

Orders carry two independent status fields, each with its own transition
table. By default a status write is an unchecked overwrite; with
`enforce_status_transitions` only the edges below are accepted (re-writing the
current value is always allowed). Entering Delivered stamps `delivered_at`
exactly once.
"""
import logging
from typing import Any, Dict, FrozenSet, List, Mapping

from pymongo.database import Database

import metrics
from database import create_document, now, parse_object_id, serialize_doc
from errors import AuthError, NotFoundError, TransitionError, ValidationError
from schemas import Order as OrderSchema
from security import require_role
from settings import Settings

logger = logging.getLogger("velora.orders")

ORDER_TRANSITIONS: Mapping[str, FrozenSet[str]] = {
    "Processing": frozenset({"Shipped", "Cancelled"}),
    "Shipped": frozenset({"Delivered", "Cancelled"}),
    "Delivered": frozenset(),
    "Cancelled": frozenset(),
}

PAYMENT_TRANSITIONS: Mapping[str, FrozenSet[str]] = {
    "Pending": frozenset({"Paid", "Failed"}),
    "Paid": frozenset(),
    "Failed": frozenset(),
}

OWNER_FIELDS = {"name": 1, "email": 1}
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def check_transition(table: Mapping[str, FrozenSet[str]], field: str, current: str, requested: str) -> None:
    if requested not in table:
        raise ValidationError(f"Invalid {field}: {requested}")
    if current == requested:
        return
    if requested not in table.get(current, frozenset()):
        raise TransitionError(field, current, requested)


def _owner(db: Database, user_id: str) -> Dict[str, Any]:
    try:
        oid = parse_object_id(user_id, "User not found")
    except NotFoundError:
        return {"id": user_id, "name": None, "email": None}
    user = db["user"].find_one({"_id": oid}, OWNER_FIELDS)
    if not user:
        return {"id": user_id, "name": None, "email": None}
    return {"id": str(user["_id"]), "name": user.get("name"), "email": user.get("email")}


def with_owner(db: Database, order: Dict[str, Any]) -> Dict[str, Any]:
    doc = serialize_doc(order)
    doc["user"] = _owner(db, order["user"])
    return doc


def _load(db: Database, order_id: str) -> Dict[str, Any]:
    order = db["order"].find_one({"_id": parse_object_id(order_id, "Order not found")})
    if not order:
        raise NotFoundError("Order not found")
    return order


def create_order(
    db: Database,
    user: dict,
    items: List[Dict[str, Any]],
    shipping_address: Dict[str, Any],
    payment_method: str,
    prices: Dict[str, float],
) -> dict:
    if not items:
        logger.info("Order rejected for user %s: no order items", user["id"])
        raise ValidationError("No order items")

    # prices are taken as submitted by the client
    order = OrderSchema(
        user=user["id"],
        order_items=items,
        shipping_address=shipping_address,
        payment_method=payment_method,
        items_price=prices.get("items_price", 0),
        shipping_price=prices.get("shipping_price", 0),
        tax_price=prices.get("tax_price", 0),
        total_price=prices.get("total_price", 0),
    )
    order_id = create_document(db, "order", order)
    metrics.orders_created_total.inc()
    logger.info("Order created: %s (Total: $%.2f)", order_id, order.total_price)
    return serialize_doc(db["order"].find_one({"_id": parse_object_id(order_id, "Order not found")}))


def get_order(db: Database, requester: dict, order_id: str) -> dict:
    order = _load(db, order_id)
    if order["user"] != requester["id"] and requester.get("role") != "admin":
        logger.warning("Unauthorized access to order %s by user %s", order_id, requester["id"])
        raise AuthError("forbidden", "Not authorized", status_code=401)
    return with_owner(db, order)


def list_my_orders(db: Database, user: dict) -> List[dict]:
    orders = db["order"].find({"user": user["id"]}).sort(NEWEST_FIRST)
    result = [serialize_doc(o) for o in orders]
    logger.info("Retrieved %d orders for user: %s", len(result), user["id"])
    return result


def list_all_orders(db: Database, requester: dict) -> List[dict]:
    require_role(requester, "admin")
    orders = db["order"].find({}).sort(NEWEST_FIRST)
    return [with_owner(db, o) for o in orders]


def _write_status(
    db: Database,
    settings: Settings,
    order: Dict[str, Any],
    table: Mapping[str, FrozenSet[str]],
    field: str,
    status: str,
) -> None:
    if not settings.enforce_status_transitions:
        if status not in table:
            raise ValidationError(f"Invalid {field}: {status}")
        db["order"].update_one({"_id": order["_id"]}, {"$set": {field: status, "updated_at": now()}})
        return

    check_transition(table, field, order[field], status)
    # the write only lands while the status is still the one that was checked
    result = db["order"].update_one(
        {"_id": order["_id"], field: order[field]},
        {"$set": {field: status, "updated_at": now()}},
    )
    if result.matched_count == 0:
        current = db["order"].find_one({"_id": order["_id"]}, {field: 1})
        if not current:
            raise NotFoundError("Order not found")
        logger.warning("Order %s %s changed to %s before the write", order["_id"], field, current[field])
        raise TransitionError(field, current[field], status)


def set_order_status(db: Database, settings: Settings, requester: dict, order_id: str, status: str) -> dict:
    require_role(requester, "admin")
    order = _load(db, order_id)
    _write_status(db, settings, order, ORDER_TRANSITIONS, "order_status", status)
    if status == "Delivered":
        stamped = db["order"].update_one(
            {"_id": order["_id"], "delivered_at": None},
            {"$set": {"delivered_at": now()}},
        )
        if stamped.modified_count:
            logger.info("Order %s marked as delivered", order_id)

    logger.info("Order %s status set to %s by admin %s", order_id, status, requester["id"])
    return serialize_doc(_load(db, order_id))


def set_payment_status(db: Database, settings: Settings, requester: dict, order_id: str, status: str) -> dict:
    require_role(requester, "admin")
    order = _load(db, order_id)
    _write_status(db, settings, order, PAYMENT_TRANSITIONS, "payment_status", status)
    logger.info("Order %s payment status set to %s by admin %s", order_id, status, requester["id"])
    return serialize_doc(_load(db, order_id))
