import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pymongo.database import Database

from config import AppConfig, get_config
from database import get_db, serialize_doc, to_object_id
from errors import BadRequest, DuplicateKey, NotFound
from query import SUBSTRING, FieldRule, FilterConfig, build_filter
from repository import Repository
from schemas import Account, AccountUpdate, LoginRequest, RegisterRequest
from security import ROLE_SUPERADMIN, Identity, hash_password, issue_token, require_role, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

ACCOUNT_FILTERS = FilterConfig(
    rules=(
        FieldRule("role", "role"),
        FieldRule("username", "username", SUBSTRING),
        FieldRule("email", "email", SUBSTRING),
    ),
    search_text=("username", "email"),
)

HIDE_PASSWORD = {"password": 0}


def accounts(db: Database) -> Repository:
    return Repository(db, "account")


def ensure_unique(repo: Repository, changes: dict, exclude_id=None) -> None:
    for field in ("email", "username"):
        if field not in changes:
            continue
        query = {field: changes[field]}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if repo.exists_unscoped(query):
            raise DuplicateKey(field)


def create_account(repo: Repository, body: RegisterRequest) -> dict:
    ensure_unique(repo, {"email": body.email, "username": body.username})
    account = Account(
        username=body.username,
        email=body.email,
        password=hash_password(body.password),
        role=body.role,
    )
    account_id = repo.insert(account)
    logger.info("Created %s account %s", account.role, account_id)
    return repo.get(account_id)


# Routes

@router.post("/register", status_code=201)
def register(body: RegisterRequest, db: Database = Depends(get_db), config: AppConfig = Depends(get_config)):
    user = create_account(accounts(db), body)
    token = issue_token(str(user["_id"]), user["role"], config)
    return {"message": "User registered successfully", "user": serialize_doc(user), "token": token}


@router.post("/login")
def login(body: LoginRequest, db: Database = Depends(get_db), config: AppConfig = Depends(get_config)):
    user = accounts(db).find_one({"email": body.email})
    if not user:
        raise NotFound("User not found")
    if not verify_password(body.password, user.get("password", "")):
        logger.warning("Failed login for %s", body.email)
        raise BadRequest("Invalid credentials")
    logger.info("Login for account %s", user["_id"])
    token = issue_token(str(user["_id"]), user["role"], config)
    return {"message": "Login successful", "token": token, "user": serialize_doc(user)}


@router.get("/me")
def me(
    identity: Identity = Depends(require_role()),
    db: Database = Depends(get_db),
    config: AppConfig = Depends(get_config),
):
    user = accounts(db).get(identity.subject_id, HIDE_PASSWORD)
    if not user:
        raise NotFound("User not found")
    token = issue_token(str(user["_id"]), user["role"], config)
    return {"user": serialize_doc(user), "token": token}


@router.post("/logout")
def logout(_: Identity = Depends(require_role())):
    # tokens are stateless; the client discards its copy
    return {"message": "Logout successful"}


@router.get("/users")
def list_users(request: Request, _: Identity = Depends(require_role()), db: Database = Depends(get_db)):
    filter_dict = build_filter(request.query_params, ACCOUNT_FILTERS)
    users = accounts(db).find(filter_dict, sort=[("created_at", -1)], projection=HIDE_PASSWORD)
    return {"users": [serialize_doc(u) for u in users]}


@router.post("/add-user", status_code=201)
def add_user(body: RegisterRequest, _: Identity = Depends(require_role(ROLE_SUPERADMIN)), db: Database = Depends(get_db)):
    user = create_account(accounts(db), body)
    return {"message": "User added successfully", "user": serialize_doc(user)}


@router.patch("/users/{user_id}")
def edit_user(
    user_id: str,
    body: AccountUpdate,
    _: Identity = Depends(require_role(ROLE_SUPERADMIN)),
    db: Database = Depends(get_db),
):
    repo = accounts(db)
    user = repo.get(user_id)
    if not user:
        raise NotFound("User not found")

    changes = body.model_dump(exclude_none=True)
    ensure_unique(repo, changes, exclude_id=user["_id"])
    password: Optional[str] = changes.pop("password", None)
    if password is not None and not verify_password(password, user.get("password", "")):
        changes["password"] = hash_password(password)
    if not changes:
        return {"message": "User updated successfully", "user": serialize_doc(user)}

    updated = repo.update({"_id": user["_id"]}, changes)
    return {"message": "User updated successfully", "user": serialize_doc(updated)}


@router.delete("/users/{user_id}")
def delete_user(user_id: str, _: Identity = Depends(require_role(ROLE_SUPERADMIN)), db: Database = Depends(get_db)):
    oid = to_object_id(user_id)
    if oid is None or not accounts(db).delete({"_id": oid}):
        raise NotFound("User not found")
    return {"message": "User deleted successfully"}
