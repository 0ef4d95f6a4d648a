import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import cart
import catalog
import checkout
import database
import orders
import users
from cache import ResponseCache, ResponseCacheMiddleware
from config import settings, setup_logging
from database import ensure_indexes, get_db, serialize_doc
from errors import ShopError
from gateway import RazorpayGateway, get_gateway
from schemas import (
    AddressBody,
    AddToCartBody,
    CategoryCreateBody,
    CategoryUpdateBody,
    CreateOrderBody,
    LoginBody,
    OnlinePaymentBody,
    OrderStatusBody,
    ProductCreateBody,
    ProductImageBody,
    ProductUpdateBody,
    ProfileUpdateBody,
    ReviewBody,
    SignupBody,
    UpdateQuantityBody,
    VerifyPaymentBody,
)
from security import (
    clear_token_cookie,
    get_current_user,
    public_user,
    require_admin,
    set_token_cookie,
    token_for_user,
)

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    yield


app = FastAPI(title="E-commerce Backend", lifespan=lifespan)

response_cache = ResponseCache(
    {
        "/api/products": settings.products_cache_ttl,
        "/api/categories": settings.categories_cache_ttl,
    },
    max_entries=settings.cache_max_entries,
)

app.add_middleware(ResponseCacheMiddleware, cache=response_cache)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["Set-Cookie"],
)


# ----------------------- Errors -----------------------
def error_body(message: str, errors=None) -> dict:
    return {"success": False, "message": message, "errors": errors or []}


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        errors.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content=error_body("Invalid input", errors))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "E-commerce API running"}


@app.get("/api/health")
def health():
    response = {"status": "ok", "message": "API is running", "database": "Not Configured", "collections": []}
    if database.db is not None:
        try:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "Connected"
        except Exception as e:
            response["database"] = f"Error: {str(e)[:80]}"
    return response


# ----------------------- Users -----------------------
@app.post("/api/users/signup", status_code=201)
def signup(body: SignupBody, response: Response, db: Database = Depends(get_db)):
    user = users.register(db, body)
    token = token_for_user(user)
    set_token_cookie(response, token)
    return {"success": True, "message": "User registered successfully.", "token": token, "user": public_user(user)}


@app.post("/api/users/login")
def login(body: LoginBody, response: Response, db: Database = Depends(get_db)):
    user = users.login(db, body)
    token = token_for_user(user)
    set_token_cookie(response, token)
    return {"success": True, "message": "Login successful", "token": token, "user": public_user(user)}


@app.post("/api/users/logout")
def logout(response: Response):
    clear_token_cookie(response)
    return {"success": True, "message": "Logged out"}


@app.get("/api/users/profile")
def profile(user=Depends(get_current_user)):
    return {"success": True, "user": public_user(user)}


@app.post("/api/users/update-profile")
def update_profile(body: ProfileUpdateBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    updated = users.update_profile(db, user, body)
    return {"success": True, "message": "Profile updated successfully", "user": serialize_doc(public_user(updated))}


@app.get("/api/users/orders")
def my_orders(user=Depends(get_current_user), db: Database = Depends(get_db)):
    found = users.user_orders(db, user)
    return {"success": True, "orders": serialize_doc(found), "total_orders": len(found)}


# ----------------------- Addresses -----------------------
@app.post("/api/checkout/address")
@app.post("/api/checkout/save-address")
def save_address(body: AddressBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    address = users.save_address(db, user, body)
    return {"success": True, "message": "Address saved successfully", "address": serialize_doc(address)}


@app.get("/api/checkout/addresses")
def get_addresses(user=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "addresses": serialize_doc(users.list_addresses(db, user))}


# ----------------------- Cart -----------------------
@app.get("/api/cart")
def get_cart(user=Depends(get_current_user), db: Database = Depends(get_db)):
    summary = cart.read_cart(db, user["_id"])
    return {"success": True, **serialize_doc(summary)}


@app.post("/api/cart")
@app.post("/api/cart/add")
def add_to_cart(body: AddToCartBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    cart.add_item(db, user, body.product_id, body.quantity)
    return {"success": True, "message": "Item added to cart"}


@app.delete("/api/cart/remove/{product_id}")
@app.post("/api/cart/remove/{product_id}")
def remove_from_cart(product_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    removed = cart.remove_item(db, user, product_id)
    return {
        "success": True,
        "message": f"Item{'s' if removed > 1 else ''} removed from cart",
        "removed_count": removed,
    }


@app.post("/api/cart/update/{product_id}")
def update_cart_quantity(product_id: str, body: UpdateQuantityBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    quantity = cart.set_quantity(db, user, product_id, body.quantity)
    return {"success": True, "message": "Cart quantity updated successfully", "new_quantity": quantity}


# ----------------------- Checkout & Payment -----------------------
@app.post("/api/checkout/create-order")
@app.post("/api/payment/create-order")
@app.post("/api/cart/create-order")
def create_order(body: CreateOrderBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = checkout.create_order(db, user, body)
    return {"success": True, "order": serialize_doc(order)}


@app.get("/api/checkout/order/{order_id}")
def order_details(order_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = orders.find_order(db, orders.OrderRef.parse(order_id), user["_id"])
    return {"success": True, "order": serialize_doc(order)}


@app.post("/api/payment/cod/{order_id}")
def cash_on_delivery(order_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = checkout.confirm_cash_on_delivery(db, user, order_id)
    return {
        "success": True,
        "message": "Order confirmed with Cash on Delivery",
        "order_id": str(order["_id"]),
        "order": serialize_doc(order),
    }


@app.post("/api/payment/create/{order_id}")
def online_payment(
    order_id: str,
    body: Optional[OnlinePaymentBody] = None,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    result = checkout.start_online_payment(db, user, order_id, gateway, method=body.method if body else None)
    return {"success": True, "message": "Razorpay order created successfully", **result}


@app.post("/api/payment/verify")
def verify_payment(
    body: VerifyPaymentBody,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    order = checkout.verify_online_payment(db, user, body, gateway)
    return {
        "success": True,
        "message": "Payment verified successfully",
        "order_id": str(order["_id"]),
        "payment_id": body.razorpay_payment_id,
        "order": serialize_doc(order),
    }


# ----------------------- Categories -----------------------
@app.get("/api/categories")
def list_categories(db: Database = Depends(get_db)):
    return {"categories": serialize_doc(catalog.list_categories(db))}


@app.get("/api/categories/{slug}")
def category_page(slug: str, db: Database = Depends(get_db)):
    category = catalog.get_category_by_slug(db, slug)
    products = catalog.products_in_category(db, category)
    return {"category": serialize_doc(category), "products": serialize_doc(products)}


@app.post("/api/categories", status_code=201)
def create_category(body: CategoryCreateBody, user=Depends(require_admin), db: Database = Depends(get_db)):
    category = catalog.create_category(db, body)
    return {"success": True, "message": "Category created successfully", "category": serialize_doc(category)}


@app.put("/api/categories/{category_id}")
def update_category(category_id: str, body: CategoryUpdateBody, user=Depends(require_admin), db: Database = Depends(get_db)):
    category = catalog.update_category(db, category_id, body)
    return {"success": True, "message": "Category updated successfully", "category": serialize_doc(category)}


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
):
    return serialize_doc(catalog.list_products(db, page=page, limit=limit, category=category, search=search))


@app.get("/api/products/id/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return {"success": True, "product": serialize_doc(catalog.get_product(db, product_id))}


@app.get("/api/products/category/{identifier}")
def products_by_category(identifier: str, db: Database = Depends(get_db)):
    category = catalog.find_category(db, identifier)
    products = catalog.attach_categories(db, catalog.products_in_category(db, category))
    return {"success": True, "category": serialize_doc(category), "products": serialize_doc(products)}


@app.get("/api/products/{slug}")
def get_product_by_slug(slug: str, db: Database = Depends(get_db)):
    return {"product": serialize_doc(catalog.get_product_by_slug(db, slug))}


@app.post("/api/products/{product_id}/reviews", status_code=201)
def add_review(product_id: str, body: ReviewBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    review = catalog.add_review(db, product_id, user, body)
    return {"success": True, "message": "Review added successfully", "review": serialize_doc(review)}


@app.post("/api/products", status_code=201)
def create_product(body: ProductCreateBody, user=Depends(require_admin), db: Database = Depends(get_db)):
    product = catalog.create_product(db, body)
    return {"success": True, "message": "Product created successfully", "product": serialize_doc(product)}


@app.put("/api/products/{product_id}/image")
def update_product_image(product_id: str, body: ProductImageBody, user=Depends(require_admin), db: Database = Depends(get_db)):
    product = catalog.update_product_image(db, product_id, body.image_url)
    return {"success": True, "message": "Product image updated successfully", "image_url": product["image_url"]}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(require_admin), db: Database = Depends(get_db)):
    product = catalog.update_product(db, product_id, body)
    return {"success": True, "message": "Product updated successfully", "product": serialize_doc(product)}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user=Depends(require_admin), db: Database = Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"success": True, "message": "Product deleted successfully"}


# ----------------------- Admin -----------------------
@app.get("/api/admin/stats")
def admin_stats(user=Depends(require_admin), db: Database = Depends(get_db)):
    return {
        "users": db["user"].count_documents({}),
        "categories": db["category"].count_documents({}),
        "products": db["product"].count_documents({}),
        "orders": db["order"].count_documents({}),
    }


@app.get("/api/admin/orders")
def admin_orders(limit: int = Query(50, ge=1, le=500), user=Depends(require_admin), db: Database = Depends(get_db)):
    return {"success": True, "orders": serialize_doc(orders.list_orders(db, limit))}


@app.put("/api/admin/orders/{order_id}/status")
def admin_order_status(order_id: str, body: OrderStatusBody, user=Depends(require_admin), db: Database = Depends(get_db)):
    order = orders.set_status(db, order_id, body.status)
    return {"success": True, "order": serialize_doc(order)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
