import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

import catalog
import dashboard
import database
import metrics
import orders
import security
from database import get_db, get_optional_db
from errors import ApiError, AuthError
from schemas import (
    Address,
    Category,
    Gender,
    OrderItem,
    Product as ProductSchema,
    Review as ReviewSchema,
    ShippingAddress,
    Size,
)
from security import get_current_user, require_admin
from settings import Settings, get_settings

logger = logging.getLogger("velora.api")

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Velora Wear API Server (environment: %s)", settings.environment)
    if database.db is not None:
        security.ensure_indexes(database.db)
        security.seed_admin(database.db, settings)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, skipping admin seed")
    yield
    if database.client is not None:
        database.client.close()


app = FastAPI(title="Velora Wear API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Interceptors -----------------------
@app.middleware("http")
async def observe_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.perf_counter() - start
        route = request.scope.get("route")
        # every unknown path shares one label
        path = route.path if route is not None else "unmatched"
        labels = {"method": request.method, "route": path, "status_code": str(status_code)}
        metrics.http_request_duration.labels(**labels).observe(duration)
        metrics.http_requests_total.labels(**labels).inc()
        logger.info("%s %s %d %.1fms", request.method, request.url.path, status_code, duration * 1000)


# ----------------------- Errors -----------------------
def _settings_for(request: Request) -> Settings:
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    return provider()


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if isinstance(exc, AuthError):
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]) or str(err["loc"][0]), "message": err["msg"]}
        for err in exc.errors()
    ]
    logger.info("%s %s - Validation errors: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=400, content={"errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("ERROR - %s %s", request.method, request.url.path)
    content = {"message": "Server error"}
    if not _settings_for(request).is_production:
        content["detail"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# ----------------------- Models -----------------------
class RegisterBody(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdateBody(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    password: Optional[str] = Field(None, min_length=6)

    @field_validator("email", "password", mode="before")
    @classmethod
    def blank_means_unchanged(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProductCreateBody(ProductSchema):
    pass


class ProductUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[Category] = None
    gender: Optional[Gender] = None
    sizes: Optional[List[Size]] = None
    colors: Optional[List[str]] = None
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    is_featured: Optional[bool] = None
    is_new_arrival: Optional[bool] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    num_reviews: Optional[int] = Field(None, ge=0)


class OrderCreateBody(BaseModel):
    order_items: List[OrderItem] = []
    shipping_address: ShippingAddress
    payment_method: str
    items_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    tax_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)


class StatusBody(BaseModel):
    status: str


class ReviewCreateBody(ReviewSchema):
    pass


# ----------------------- Health -----------------------
ENDPOINTS = {
    "auth": {
        "register": "POST /api/auth/register",
        "login": "POST /api/auth/login",
        "me": "GET /api/auth/me",
        "profile": "PUT /api/auth/profile",
    },
    "products": {
        "list": "GET /api/products",
        "get": "GET /api/products/{id}",
        "create": "POST /api/products (Admin)",
        "update": "PUT /api/products/{id} (Admin)",
        "delete": "DELETE /api/products/{id} (Admin)",
    },
    "orders": {
        "create": "POST /api/orders",
        "my_orders": "GET /api/orders/myorders",
        "get": "GET /api/orders/{id}",
        "list": "GET /api/orders (Admin)",
        "update_status": "PUT /api/orders/{id}/status (Admin)",
        "update_payment": "PUT /api/orders/{id}/payment (Admin)",
    },
    "reviews": {
        "list": "GET /api/reviews",
        "create": "POST /api/reviews",
    },
    "admin": {
        "stats": "GET /api/admin/stats (Admin)",
        "users": "GET /api/admin/users (Admin)",
        "delete_user": "DELETE /api/admin/users/{id} (Admin)",
    },
}


@app.get("/")
def root(request: Request):
    base_url = str(request.base_url).rstrip("/")
    return {
        "message": "Welcome to Velora Wear API",
        "documentation": f"{base_url}/docs",
        "version": app.version,
        "endpoints": {name: f"{base_url}/api/{name}" for name in ENDPOINTS},
    }


@app.get("/api")
def api_info():
    return {"message": "Velora Wear API", "version": app.version, "endpoints": ENDPOINTS}


@app.get("/health")
def health(db: Optional[Database] = Depends(get_optional_db)):
    response = {
        "status": "UP",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "Not Configured",
        "collections": [],
    }
    if db is not None:
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "Connected"
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            response["database"] = f"Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/register", status_code=201)
def register(body: RegisterBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    logger.info("Registration attempt for email: %s", body.email)
    return security.register(db, settings, body.name, body.email, body.password)


@app.post("/api/auth/login")
def login(body: LoginBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    logger.info("Login attempt for email: %s", body.email)
    return security.login(db, settings, body.email, body.password)


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return user


@app.put("/api/auth/profile")
def update_profile(
    body: ProfileUpdateBody,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return security.update_profile(db, settings, user["id"], body.model_dump(exclude_none=True))


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    gender: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    featured: Optional[bool] = None,
    new_arrivals: Optional[bool] = None,
    db: Database = Depends(get_db),
):
    filt = catalog.build_product_filter(category, gender, search, featured, new_arrivals)
    return catalog.list_products(db, filt, sort)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.post("/api/products", status_code=201)
def create_product(body: ProductCreateBody, user=Depends(require_admin), db: Database = Depends(get_db)):
    logger.info("Admin %s creating product: %s", user["id"], body.name)
    return catalog.create_product(db, body)


@app.put("/api/products/{product_id}")
def update_product(
    product_id: str, body: ProductUpdateBody, user=Depends(require_admin), db: Database = Depends(get_db)
):
    return catalog.update_product(db, product_id, body.model_dump(exclude_none=True))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user=Depends(require_admin), db: Database = Depends(get_db)):
    return catalog.delete_product(db, product_id)


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    prices = body.model_dump(include={"items_price", "shipping_price", "tax_price", "total_price"})
    return orders.create_order(
        db,
        user,
        [item.model_dump() for item in body.order_items],
        body.shipping_address.model_dump(),
        body.payment_method,
        prices,
    )


@app.get("/api/orders/myorders")
def my_orders(user=Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.list_my_orders(db, user)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    return orders.get_order(db, user, order_id)


@app.get("/api/orders")
def all_orders(user=Depends(require_admin), db: Database = Depends(get_db)):
    return orders.list_all_orders(db, user)


@app.put("/api/orders/{order_id}/status")
def set_order_status(
    order_id: str,
    body: StatusBody,
    user=Depends(require_admin),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return orders.set_order_status(db, settings, user, order_id, body.status)


@app.put("/api/orders/{order_id}/payment")
def set_payment_status(
    order_id: str,
    body: StatusBody,
    user=Depends(require_admin),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return orders.set_payment_status(db, settings, user, order_id, body.status)


# ----------------------- Reviews -----------------------
@app.get("/api/reviews")
def list_reviews(db: Database = Depends(get_db)):
    return catalog.list_recent_reviews(db)


@app.post("/api/reviews", status_code=201)
def create_review(body: ReviewCreateBody, db: Database = Depends(get_db)):
    return catalog.create_review(db, body)


# ----------------------- Admin -----------------------
@app.get("/api/admin/stats")
def admin_stats(user=Depends(require_admin), db: Database = Depends(get_db)):
    return dashboard.get_dashboard_stats(db)


@app.get("/api/admin/users")
def admin_users(user=Depends(require_admin), db: Database = Depends(get_db)):
    return dashboard.list_users(db)


@app.delete("/api/admin/users/{user_id}")
def admin_delete_user(user_id: str, user=Depends(require_admin), db: Database = Depends(get_db)):
    logger.info("Admin %s deleting user %s", user["id"], user_id)
    return dashboard.delete_user(db, user_id)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.port))
    uvicorn.run(app, host="0.0.0.0", port=port)
