from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import ValidationError
from pymongo.database import Database

from database import get_db, serialize_doc, to_object_id
from errors import NotFound, ValidationFailed
from repository import Repository
from schemas import ShippingMethod, StoreConfig, StoreUpdate
from security import Identity, require_role

router = APIRouter(prefix="/api/store", tags=["store"])


def stores(db: Database) -> Repository:
    return Repository(db, "store")


def new_method(method: ShippingMethod) -> dict:
    data = method.model_dump()
    data["_id"] = ObjectId()
    data["deleted"] = False
    return data


def load_store(db: Database, store_id: str) -> dict:
    store = stores(db).get(store_id)
    if not store:
        raise NotFound("Store not found")
    return store


def find_method(store: dict, method_id: str) -> int:
    oid = to_object_id(method_id)
    for index, method in enumerate(store.get("shipping_methods", [])):
        if oid is not None and method.get("_id") == oid and not method.get("deleted"):
            return index
    raise NotFound("Shipping method not found")


def visible(store: dict) -> dict:
    shown = dict(store)
    shown["shipping_methods"] = [m for m in store.get("shipping_methods", []) if not m.get("deleted")]
    return serialize_doc(shown)


def check_method(method: dict) -> dict:
    fields = {k: v for k, v in method.items() if k in ShippingMethod.model_fields}
    try:
        ShippingMethod(**fields)
    except ValidationError as exc:
        raise ValidationFailed.from_pydantic(exc)
    return method


def save_methods(db: Database, store: dict, methods: list) -> dict:
    return stores(db).update({"_id": store["_id"]}, {"shipping_methods": methods})


# Routes

@router.post("/create", status_code=201)
def create_store(body: StoreConfig, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    data = body.model_dump()
    data["shipping_methods"] = [new_method(m) for m in body.shipping_methods]
    repo = stores(db)
    store_id = repo.insert(data)
    return {"success": True, "message": "Store created successfully", "data": visible(repo.get(store_id))}


@router.patch("/edit/{store_id}")
def edit_store(store_id: str, body: StoreUpdate, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    store = load_store(db, store_id)
    changes = body.model_dump(exclude_none=True, exclude={"shipping_methods"})

    if body.shipping_methods is not None:
        methods = [dict(m) for m in store.get("shipping_methods", [])]
        for patch in body.shipping_methods:
            index = find_method({"shipping_methods": methods}, patch.id)
            methods[index].update(patch.model_dump(exclude_none=True, exclude={"id"}))
            check_method(methods[index])
        changes["shipping_methods"] = methods

    updated = stores(db).update({"_id": store["_id"]}, changes) if changes else store
    return {"success": True, "message": "Store updated successfully", "data": visible(updated)}


@router.get("/{store_id}")
def get_store(store_id: str, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    store = load_store(db, store_id)
    return {"success": True, "message": "Store retrieved successfully", "data": visible(store)}


@router.post("/{store_id}/shipping-method")
def add_shipping_method(
    store_id: str,
    body: ShippingMethod,
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    store = load_store(db, store_id)
    methods = list(store.get("shipping_methods", []))
    methods.append(new_method(body))
    updated = save_methods(db, store, methods)
    return {"success": True, "message": "Shipping method added successfully", "data": visible(updated)}


@router.patch("/{store_id}/shipping-method/{method_id}")
def edit_shipping_method(
    store_id: str,
    method_id: str,
    body: ShippingMethod,
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    store = load_store(db, store_id)
    index = find_method(store, method_id)
    methods = list(store["shipping_methods"])
    methods[index] = {**methods[index], **body.model_dump(exclude_unset=True)}
    updated = save_methods(db, store, methods)
    return {"success": True, "message": "Shipping method updated successfully", "data": visible(updated)}


@router.delete("/{store_id}/shipping-method/{method_id}")
def delete_shipping_method(
    store_id: str,
    method_id: str,
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    store = load_store(db, store_id)
    index = find_method(store, method_id)
    methods = list(store["shipping_methods"])
    methods[index] = {**methods[index], "deleted": True}
    updated = save_methods(db, store, methods)
    return {"success": True, "message": "Shipping method soft deleted successfully", "data": visible(updated)}
