import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, EmailStr, ValidationError
from jose import jwt, JWTError
from passlib.context import CryptContext
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import configure_logging, settings
from database import db, create_document, get_documents, ensure_indexes
from errors import ApiError, DuplicateEmail, InvalidEmail, InvalidPassword, NotFound, PersistenceFailure, Unauthorized
from schemas import User as UserSchema, Product as ProductSchema, ProductUpdate, DataRecord
from uploads import URL_PREFIX, discard_images, save_images

configure_logging()
logger = logging.getLogger("storefront")

# App init
app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(settings.upload_dir, exist_ok=True)
app.mount(URL_PREFIX, StaticFiles(directory=settings.upload_dir), name="uploads")

# Security/JWT
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)


# Error envelope
def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def first_error(exc) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    loc = [str(p) for p in errors[0].get("loc", ()) if p not in ("body", "query", "path")]
    return f"Invalid {'.'.join(loc)}" if loc else "Invalid request"


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return error_response(exc.status_code, ApiError.message)
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(400, first_error(exc))


@app.exception_handler(ValidationError)
async def schema_validation_handler(request: Request, exc: ValidationError):
    # Raised when a document fails its collection schema
    return error_response(400, first_error(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(PyMongoError)
@app.exception_handler(OSError)
async def persistence_error_handler(request: Request, exc: Exception):
    logger.error("%s %s failed in store: %s", request.method, request.url.path, exc, exc_info=exc)
    return error_response(500, ApiError.message)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return error_response(500, ApiError.message)


# Utils
def serialize_doc(doc: Dict[str, Any]):
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    # Convert datetime
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def require_db():
    if db is None:
        raise PersistenceFailure("Database not configured")
    return db


def parse_object_id(value: str) -> ObjectId:
    # An id that cannot exist in the store is simply not found
    if not ObjectId.is_valid(value):
        raise NotFound()
    return ObjectId(value)


def parse_attributes(raw: Optional[str]) -> Dict[str, Any]:
    """Best-effort decode of the free-form `data` field; anything unusable becomes {}."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError as e:
        logger.warning("Ignoring undecodable attribute payload: %s", e)
        return {}
    if not isinstance(value, dict):
        logger.warning("Ignoring attribute payload of type %s, expected an object", type(value).__name__)
        return {}
    return value


# Auth helpers
def create_token(user_id: str) -> str:
    payload = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=settings.token_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise Unauthorized()


def get_current_user(authorization: Optional[str] = Header(None)):
    if not authorization:
        raise Unauthorized("Missing Authorization header")
    token = authorization.replace("Bearer ", "").strip()
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        raise Unauthorized()
    user = require_db()["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise Unauthorized("Invalid token user")
    return user


# Request models
class SignupRequest(BaseModel):
    username: str
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


# Routes
@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is not None:
        response["database"] = "✅ Available"
        response["database_name"] = db.name
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


@app.on_event("startup")
def create_indexes():
    if db is not None:
        ensure_indexes(db)


# Auth
@app.post("/signup")
def signup(req: SignupRequest):
    users = require_db()["user"]
    if users.find_one({"email": req.email}):
        raise DuplicateEmail()
    user = UserSchema(name=req.username, email=req.email, password_hash=pwd_context.hash(req.password))
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        # Lost a race with a concurrent signup for the same email
        raise DuplicateEmail()
    logger.info("Registered user %s", user_id)
    return {"success": True, "token": create_token(user_id)}


@app.post("/login")
def login(req: LoginRequest):
    user = require_db()["user"].find_one({"email": req.email})
    if not user:
        raise InvalidEmail()
    if not pwd_context.verify(req.password, user.get("password_hash", "")):
        raise InvalidPassword()
    logger.info("User %s logged in", user["_id"])
    return {"success": True, "token": create_token(str(user["_id"]))}


@app.get("/me")
def me(user=Depends(get_current_user)):
    user.pop("password_hash", None)
    return {"success": True, "user": serialize_doc(user)}


# Generic records
@app.post("/api/data", status_code=201)
def create_data(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
):
    require_db()
    urls = save_images([image], settings.upload_dir, 1)
    try:
        record = DataRecord(title=title, description=description, imageUrl=urls[0] if urls else None)
        record_id = create_document("data", record)
    except Exception:
        discard_images(urls, settings.upload_dir)
        raise
    created = db["data"].find_one({"_id": ObjectId(record_id)})
    return {"success": True, "data": serialize_doc(created)}


@app.get("/api/data")
def list_data():
    return {"success": True, "data": [serialize_doc(d) for d in get_documents("data")]}


# Products
@app.post("/products", status_code=201)
def create_product(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    new_price: Optional[str] = Form(None),
    old_price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    available: Optional[str] = Form(None),
    data: Optional[str] = Form(None),
    images: List[UploadFile] = File(default=[]),
):
    require_db()
    fields = {
        "name": name,
        "description": description,
        "new_price": new_price,
        "old_price": old_price,
        "category": category,
        "available": available,
    }
    urls = save_images(images, settings.upload_dir, settings.max_upload_files)
    try:
        product = ProductSchema(
            images=urls,
            attributes=parse_attributes(data),
            **{k: v for k, v in fields.items() if v is not None},
        )
        product_id = create_document("product", product)
    except Exception:
        discard_images(urls, settings.upload_dir)
        raise
    logger.info("Created product %s with %d image(s)", product_id, len(urls))
    created = db["product"].find_one({"_id": ObjectId(product_id)})
    return {"success": True, "product": serialize_doc(created)}


@app.get("/products")
def list_products():
    return {"success": True, "products": [serialize_doc(p) for p in get_documents("product")]}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = require_db()["product"].find_one({"_id": parse_object_id(product_id)})
    if not product:
        raise NotFound()
    return {"success": True, "product": serialize_doc(product)}


@app.put("/products/{product_id}")
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    new_price: Optional[str] = Form(None),
    old_price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    available: Optional[str] = Form(None),
    data: Optional[str] = Form(None),
    images: List[UploadFile] = File(default=[]),
):
    products = require_db()["product"]
    obj_id = parse_object_id(product_id)
    existing = products.find_one({"_id": obj_id})
    if not existing:
        raise NotFound()

    # Only fields sent with the request are written
    updates = ProductUpdate(
        name=name,
        description=description,
        new_price=new_price,
        old_price=old_price,
        category=category,
        available=available,
    ).model_dump(exclude_none=True)
    if data:
        updates["attributes"] = parse_attributes(data)

    urls = save_images(images, settings.upload_dir, settings.max_upload_files)
    if urls:
        updates["images"] = urls
    updates["updated_at"] = datetime.now(timezone.utc)

    try:
        product = products.find_one_and_update(
            {"_id": obj_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
    except Exception:
        discard_images(urls, settings.upload_dir)
        raise
    if not product:
        # Deleted between the lookup and the write
        discard_images(urls, settings.upload_dir)
        raise NotFound()

    if urls:
        discard_images(existing.get("images", []), settings.upload_dir)
    logger.info("Updated product %s (%s)", product_id, ", ".join(sorted(updates)))
    return {"success": True, "product": serialize_doc(product)}


@app.delete("/products/{product_id}")
def delete_product(product_id: str):
    product = require_db()["product"].find_one_and_delete({"_id": parse_object_id(product_id)})
    if not product:
        raise NotFound()
    discard_images(product.get("images", []), settings.upload_dir)
    logger.info("Deleted product %s", product_id)
    return {"success": True, "product": serialize_doc(product)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
