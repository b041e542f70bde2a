import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Request
from pymongo.database import Database

from database import INT64_MAX, INT64_MIN, get_db, serialize_doc, to_object_id
from errors import BadRequest, DuplicateKey, InvalidQuery, NotFound
from query import (
    EMPTY_PAGE, EXACT, GTE, LTE, SUBSTRING,
    FieldRule, FilterConfig, build_filter, object_id_cast, paginate, parse_date, parse_int, parse_number,
)
from repository import Repository, populate
from schemas import ORDER_STATUSES, OrderCreate, OrderLine, OrderProductsUpdate, OrderStatusUpdate
from security import Identity, require_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

PAGE_SIZE = 11
SORT_FIELDS = ("created_at", "order_date", "total_price", "status", "order_id")
INVALID_DATE = "Invalid date format. Use YYYY-MM-DD"

ORDER_FILTERS = FilterConfig(
    rules=(
        FieldRule("status", "status"),
        FieldRule("order_id", "order_id", EXACT, parse_int, "Invalid order id"),
        FieldRule("order_date", "order_date", EXACT, parse_date, INVALID_DATE),
        FieldRule("customer_id", "customer", EXACT, object_id_cast, "Invalid customer id"),
        FieldRule("product_id", "products.product_id", EXACT, object_id_cast, "Invalid product id"),
        FieldRule("customer_name", "customer_name", SUBSTRING),
        FieldRule("price_min", "total_price", GTE),
        FieldRule("price_max", "total_price", LTE),
        FieldRule("total_price", "total_price", EXACT, parse_number, "Invalid price format"),
    ),
    search_text=("customer_name", "status"),
    search_numeric=("total_price", "order_id"),
)


def orders(db: Database) -> Repository:
    return Repository(db, "order")


def expand(db: Database, order: Optional[dict]) -> Optional[dict]:
    populate(db, order, "customer", "customer")
    populate(db, order, "user", "account", {"password": 0})
    populate(db, order, "products.product_id", "product")
    return order


def price_lines(db: Database, lines: List[OrderLine], skip_missing: bool = False) -> float:
    """Resolve every line's product and return the order total.

    Prices are read one product at a time; there is no snapshot across lines.
    With `skip_missing`, lines whose product is gone add nothing.
    """
    product_repo = Repository(db, "product")
    total = 0.0
    for line in lines:
        product = product_repo.get(line.product_id)
        if not product:
            if skip_missing:
                continue
            raise BadRequest(f"Product with ID {line.product_id} not found")
        total += float(product["price"]) * line.quantity
    return total


def sort_order(params) -> List[tuple]:
    sort_by = params.get("sort_by", "created_at")
    field = sort_by if sort_by in SORT_FIELDS else "created_at"
    direction = 1 if params.get("order") == "asc" else -1
    return [(field, direction)]


# Routes

@router.get("")
def list_orders(request: Request, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    params = request.query_params
    filter_dict = build_filter(params, ORDER_FILTERS)
    page = paginate(orders(db), filter_dict, params, PAGE_SIZE, sort=sort_order(params), out_of_range=EMPTY_PAGE)
    return page.as_dict(lambda o: serialize_doc(expand(db, o)))


@router.post("", status_code=201)
def add_order(body: OrderCreate, identity: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    repo = orders(db)
    if repo.exists_unscoped({"order_id": body.order_id}):
        raise DuplicateKey("order_id")

    customer = Repository(db, "customer").get(body.customer)
    if not customer:
        raise BadRequest("Customer not found")

    total_price = price_lines(db, body.products)
    data = body.model_dump()
    data["customer"] = customer["_id"]
    data["customer_name"] = customer.get("customer_name")
    data["user"] = to_object_id(identity.subject_id)
    data["products"] = [
        {"product_id": to_object_id(line.product_id), "quantity": line.quantity} for line in body.products
    ]
    data["total_price"] = total_price
    order_id = repo.insert(data)
    logger.info("Created order #%s for customer %s", body.order_id, customer["_id"])
    return {"message": "Order created successfully", "order": serialize_doc(expand(db, repo.get(order_id)))}


@router.get("/by-date")
def orders_by_date(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    if not start_date or not end_date:
        raise InvalidQuery("Start date and end date are required")
    try:
        start, end = parse_date(start_date), parse_date(end_date)
    except ValueError:
        raise InvalidQuery(INVALID_DATE)
    items = orders(db).find({"order_date": {"$gte": start, "$lte": end}}, sort=[("order_date", 1)])
    for order in items:
        populate(db, order, "customer", "customer")
    return {"orders": [serialize_doc(o) for o in items]}


@router.get("/{order_id}")
def get_order(order_id: int = Path(..., ge=INT64_MIN, le=INT64_MAX), db: Database = Depends(get_db)):
    order = orders(db).find_one({"order_id": order_id})
    if not order:
        raise NotFound("Order not found")
    return {"order": serialize_doc(expand(db, order))}


@router.patch("/{order_id}")
def update_order_status(
    body: OrderStatusUpdate,
    order_id: int = Path(..., ge=INT64_MIN, le=INT64_MAX),
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    if not body.status:
        raise BadRequest("Status is required")
    if body.status not in ORDER_STATUSES:
        raise BadRequest("Invalid status")
    # any listed status may follow any other
    updated = orders(db).update({"order_id": order_id}, {"status": body.status})
    if not updated:
        raise NotFound("Order not found")
    return {"message": "Order status updated", "order": serialize_doc(updated)}


@router.patch("/{order_id}/products")
def add_order_products(
    body: OrderProductsUpdate,
    order_id: int = Path(..., ge=INT64_MIN, le=INT64_MAX),
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    repo = orders(db)
    order = repo.find_one({"order_id": order_id})
    if not order:
        raise NotFound("Order not found")

    quantities: Dict[str, int] = {}
    for line in order.get("products", []):
        key = str(line["product_id"])
        quantities[key] = quantities.get(key, 0) + int(line["quantity"])
    price_lines(db, body.products)
    for line in body.products:
        key = str(to_object_id(line.product_id))
        quantities[key] = quantities.get(key, 0) + line.quantity

    lines = [OrderLine(product_id=pid, quantity=qty) for pid, qty in quantities.items()]
    total_price = price_lines(db, lines, skip_missing=True)
    updated = repo.update(
        {"_id": order["_id"]},
        {
            "products": [{"product_id": to_object_id(l.product_id), "quantity": l.quantity} for l in lines],
            "status": "processing",
            "total_price": total_price,
        },
    )
    return {"message": "Order updated successfully", "order": serialize_doc(expand(db, updated))}


@router.delete("/{order_id}")
def delete_order(
    order_id: int = Path(..., ge=INT64_MIN, le=INT64_MAX),
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    if not orders(db).delete({"order_id": order_id}):
        raise NotFound("Order not found")
    return {"message": "Order deleted successfully"}
