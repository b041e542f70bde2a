import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError
from pymongo.database import Database

from database import get_db, serialize_doc, to_object_id
from errors import BadRequest, InvalidQuery, NotFound, ValidationFailed
from query import (
    EMPTY_PAGE, EXACT, GTE, LTE, SUBSTRING,
    FieldRule, FilterConfig, build_filter, paginate, parse_int, parse_number,
)
from repository import Repository
from schemas import MAX_PRODUCT_IMAGES, Product, ProductUpdate, price_after_discount
from security import Identity, require_role
from uploads import ImageUploader, get_uploader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

FIRST_PRODUCT_ID = 100
PAGE_SIZE = 11
TOO_MANY_IMAGES = f"Maximum of {MAX_PRODUCT_IMAGES} images allowed"

PRODUCT_FILTERS = FilterConfig(
    rules=(
        FieldRule("product_id", "product_id", EXACT, parse_int, "Invalid product id"),
        FieldRule("name", "name", SUBSTRING),
        FieldRule("category", "category"),
        FieldRule("price", "price", EXACT, parse_number, "Invalid price format"),
        FieldRule("price_min", "price", GTE),
        FieldRule("price_max", "price", LTE),
    ),
    search_text=("name", "description", "category"),
    search_numeric=("price", "quantity"),
)


def products(db: Database) -> Repository:
    return Repository(db, "product")


def product_out(doc: dict) -> dict:
    out = serialize_doc(doc)
    out["price_after_discount"] = price_after_discount(doc)
    return out


def next_product_id(repo: Repository) -> int:
    # deleted products keep their number, so look past the soft-delete scope
    last = repo.collection.find_one({}, sort=[("product_id", -1)])
    if last and last.get("product_id") is not None:
        return int(last["product_id"]) + 1
    return FIRST_PRODUCT_ID


def name_pattern(name: str) -> str:
    """Match a product name ignoring case and whitespace."""
    letters = [re.escape(ch) for ch in name if not ch.isspace()]
    return r"^\s*" + r"\s*".join(letters) + r"\s*$"


def _uploads(images: Optional[List[UploadFile]]) -> List[UploadFile]:
    return [f for f in (images or []) if f.filename]


# Routes

@router.get("")
def list_products(db: Database = Depends(get_db)):
    items = products(db).find(sort=[("product_id", 1)])
    return {"products": [product_out(p) for p in items]}


@router.post("", status_code=201)
def create_product(
    name: str = Form(...),
    price: float = Form(...),
    category: str = Form(...),
    description: str = Form(...),
    quantity: int = Form(...),
    rating: float = Form(0),
    discount_amount: float = Form(0),
    discount_percentage: float = Form(0),
    product_discount: float = Form(0),
    weight: Optional[float] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    identity: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
    uploader: ImageUploader = Depends(get_uploader),
):
    files = _uploads(images)
    if not files:
        raise BadRequest("No images uploaded")
    if len(files) > MAX_PRODUCT_IMAGES:
        raise BadRequest(TOO_MANY_IMAGES)

    repo = products(db)
    try:
        product = Product(
            product_id=next_product_id(repo),
            name=name,
            price=price,
            category=category,
            description=description,
            quantity=quantity,
            rating=rating,
            discount_amount=discount_amount,
            discount_percentage=discount_percentage,
            product_discount=product_discount,
            weight=weight,
            sold_by=identity.subject_id,
        )
    except ValidationError as exc:
        raise ValidationFailed.from_pydantic(exc)

    product.product_images = uploader.upload(files)
    data = product.model_dump()
    data["sold_by"] = to_object_id(identity.subject_id)
    product_id = repo.insert(data)
    logger.info("Created product %s (#%s)", product_id, product.product_id)
    return {"message": "Product created", "product": product_out(repo.get(product_id))}


@router.get("/paginated")
def paginated_products(request: Request, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    filter_dict = build_filter(request.query_params, PRODUCT_FILTERS)
    page = paginate(products(db), filter_dict, request.query_params, PAGE_SIZE,
                    sort=[("product_id", 1)], out_of_range=EMPTY_PAGE)
    return page.as_dict(product_out)


@router.get("/filter")
def filter_products(request: Request, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    filter_dict = build_filter(request.query_params, PRODUCT_FILTERS)
    items = products(db).find(filter_dict, sort=[("product_id", 1)])
    return {"products": [product_out(p) for p in items]}


@router.get("/search")
def search_products(name: Optional[str] = None, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    if not name or not name.strip():
        raise InvalidQuery("Product name is required")
    items = products(db).find({"name": {"$regex": name_pattern(name), "$options": "i"}})
    return {"products": [product_out(p) for p in items]}


@router.delete("/many")
def delete_many_products(
    product_ids: List[str] = Body(...),
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
):
    if not product_ids:
        raise BadRequest("No product IDs provided")
    oids = [oid for oid in (to_object_id(pid) for pid in product_ids) if oid is not None]
    deleted = products(db).delete_many({"_id": {"$in": oids}}) if oids else 0
    if deleted == 0:
        raise NotFound("No products found for soft deletion")
    return {"message": "Products soft deleted", "deleted_count": deleted}


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    product = products(db).get(product_id)
    if not product:
        raise NotFound("Product not found")
    return {"product": product_out(product)}


@router.patch("/{product_id}")
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    quantity: Optional[int] = Form(None),
    rating: Optional[float] = Form(None),
    discount_amount: Optional[float] = Form(None),
    discount_percentage: Optional[float] = Form(None),
    product_discount: Optional[float] = Form(None),
    in_stock: Optional[int] = Form(None),
    weight: Optional[float] = Form(None),
    product_images: Optional[List[str]] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    _: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
    uploader: ImageUploader = Depends(get_uploader),
):
    repo = products(db)
    existing = repo.get(product_id)
    if not existing:
        raise NotFound("Product not found")

    try:
        update = ProductUpdate(
            name=name,
            price=price,
            category=category,
            description=description,
            quantity=quantity,
            rating=rating,
            discount_amount=discount_amount,
            discount_percentage=discount_percentage,
            product_discount=product_discount,
            in_stock=in_stock,
            weight=weight,
        )
    except ValidationError as exc:
        raise ValidationFailed.from_pydantic(exc)

    current = list(existing.get("product_images") or [])
    files = _uploads(images)
    if files:
        if len(current) + len(files) > MAX_PRODUCT_IMAGES:
            raise BadRequest(TOO_MANY_IMAGES)
        for url in uploader.upload(files):
            if url not in current:
                current.append(url)
    if product_images is not None:
        keep = set(product_images)
        current = [url for url in current if url in keep]

    changes = update.model_dump(exclude_none=True)
    changes["product_images"] = current[:MAX_PRODUCT_IMAGES]
    updated = repo.update({"_id": existing["_id"]}, changes)
    if not updated:
        raise NotFound("Product not found")
    return {"message": "Product updated", "product": product_out(updated)}


@router.delete("/{product_id}")
def delete_product(product_id: str, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    oid = to_object_id(product_id)
    if oid is None or not products(db).delete({"_id": oid}):
        raise NotFound("Product not found")
    return {"message": "Product soft deleted"}
