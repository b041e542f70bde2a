from typing import Optional

from fastapi import APIRouter, Depends, Path, Request
from pymongo.database import Database

from database import INT64_MAX, INT64_MIN, get_db, serialize_doc
from errors import DuplicateKey, NotFound
from query import (
    EXACT, MEMBER, PAGE_NOT_FOUND, SUBSTRING,
    FieldRule, FilterConfig, build_filter, paginate, parse_int, parse_number,
)
from repository import Repository
from schemas import Customer, CustomerUpdate
from security import Identity, require_role

router = APIRouter(prefix="/api/customers", tags=["customers"])

PAGE_SIZE = 10
UNIQUE = ("customer_id", "customer_email", "customer_number")

CUSTOMER_FILTERS = FilterConfig(
    rules=(
        FieldRule("customer_id", "customer_id", EXACT, parse_int, "Invalid customer id"),
        FieldRule("customer_name", "customer_name", SUBSTRING),
        FieldRule("customer_email", "customer_email", SUBSTRING),
        FieldRule("total", "total", EXACT, parse_number, "Invalid total format"),
        FieldRule("number_of_orders", "number_of_orders", EXACT, parse_int, "Invalid number of orders"),
        FieldRule("tag", "tags", MEMBER),
    ),
    search_text=("customer_name", "customer_email", "customer_number", "tags"),
    search_numeric=("number_of_orders", "total"),
)


def customers(db: Database) -> Repository:
    return Repository(db, "customer")


def ensure_unique(repo: Repository, changes: dict, exclude_id=None) -> None:
    for field in UNIQUE:
        if changes.get(field) is None:
            continue
        query = {field: changes[field]}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if repo.exists_unscoped(query):
            raise DuplicateKey(field)


def next_customer_id(repo: Repository) -> int:
    last = repo.collection.find_one({}, sort=[("customer_id", -1)])
    return int(last["customer_id"]) + 1 if last else 1


def _list(request: Request, db: Database, customer_id: Optional[str] = None):
    params = dict(request.query_params)
    if customer_id is not None:
        params["customer_id"] = customer_id
    filter_dict = build_filter(params, CUSTOMER_FILTERS)
    page = paginate(customers(db), filter_dict, params, PAGE_SIZE,
                    sort=[("customer_name", 1)], out_of_range=PAGE_NOT_FOUND)
    return page.as_dict(serialize_doc)


# Routes

@router.get("")
def list_customers(request: Request, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    return _list(request, db)


@router.get("/{customer_id}")
def list_customers_by_id(
    customer_id: str,
    request: Request,
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    return _list(request, db, customer_id)


@router.post("", status_code=201)
def add_customer(body: Customer, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    repo = customers(db)
    ensure_unique(repo, body.model_dump())
    if body.customer_id is None:
        body.customer_id = next_customer_id(repo)
    customer_id = repo.insert(body)
    return {"message": "Customer created successfully", "customer": serialize_doc(repo.get(customer_id))}


@router.patch("/{customer_id}")
def update_customer(
    body: CustomerUpdate,
    customer_id: int = Path(..., ge=INT64_MIN, le=INT64_MAX),
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    repo = customers(db)
    existing = repo.find_one({"customer_id": customer_id})
    if not existing:
        raise NotFound("Customer not found")
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    ensure_unique(repo, changes, exclude_id=existing["_id"])
    if not changes:
        return {"message": "Customer updated successfully", "customer": serialize_doc(existing)}
    updated = repo.update({"_id": existing["_id"]}, changes)
    return {"message": "Customer updated successfully", "customer": serialize_doc(updated)}


@router.delete("/{customer_id}")
def delete_customer(
    customer_id: int = Path(..., ge=INT64_MIN, le=INT64_MAX),
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    if not customers(db).delete({"customer_id": customer_id}):
        raise NotFound("Customer not found")
    return {"message": "Customer deleted successfully"}
