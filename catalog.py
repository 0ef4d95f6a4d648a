"""Categories, products and product reviews."""
import logging
import math
import re
from typing import Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import create_document, get_documents, now, to_object_id
from errors import ConflictError, DuplicateReviewError, NotFoundError, ValidationError
from schemas import (
    Category,
    CategoryCreateBody,
    CategoryUpdateBody,
    Product,
    ProductCreateBody,
    ProductUpdateBody,
    Review,
    ReviewBody,
)

logger = logging.getLogger(__name__)

# Retries for the optimistic review write before giving up.
REVIEW_WRITE_ATTEMPTS = 3


def product_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def category_slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def rating_summary(reviews: Iterable[dict]):
    """Return (average_rating, total_reviews); the average is rounded half-up to one decimal."""
    ratings = [r["rating"] for r in reviews]
    if not ratings:
        return 0, 0
    mean = sum(ratings) / len(ratings)
    return math.floor(mean * 10 + 0.5) / 10, len(ratings)


# ----------------------- Categories -----------------------
def list_categories(db: Database) -> List[dict]:
    return get_documents(db, "category", sort=[("name", 1)])


def get_category_by_slug(db: Database, slug: str) -> dict:
    category = db["category"].find_one({"slug": slug})
    if not category:
        raise NotFoundError("Category not found")
    return category


def find_category(db: Database, identifier: str) -> dict:
    """Match a category by name (case-insensitive) or slug."""
    category = db["category"].find_one(
        {
            "$or": [
                {"name": {"$regex": f"^{re.escape(identifier)}$", "$options": "i"}},
                {"slug": category_slug(identifier)},
            ]
        }
    )
    if not category:
        raise NotFoundError("Category not found")
    return category


def resolve_category(db: Database, ref: str) -> dict:
    """Look a category up by id, falling back to slug."""
    category = None
    if ObjectId.is_valid(ref):
        category = db["category"].find_one({"_id": ObjectId(ref)})
    if not category:
        category = db["category"].find_one({"slug": ref.lower()})
    if not category:
        raise ValidationError("Category not found")
    return category


def create_category(db: Database, body: CategoryCreateBody) -> dict:
    slug = category_slug(body.name)
    if db["category"].find_one({"$or": [{"name": body.name}, {"slug": slug}]}):
        raise ConflictError("A category with this name already exists")
    category = Category(name=body.name, slug=slug, description=body.description, image_url=body.image_url)
    category_id = create_document(db, "category", category)
    return db["category"].find_one({"_id": category_id})


def update_category(db: Database, category_id: str, body: CategoryUpdateBody) -> dict:
    oid = to_object_id(category_id, "category ID")
    category = db["category"].find_one({"_id": oid})
    if not category:
        raise NotFoundError("Category not found")

    update = {}
    if body.name:
        slug = category_slug(body.name)
        clash = db["category"].find_one({"_id": {"$ne": oid}, "$or": [{"name": body.name}, {"slug": slug}]})
        if clash:
            raise ConflictError("A category with this name already exists")
        update["name"] = body.name
        update["slug"] = slug
    if body.description:
        update["description"] = body.description
    if body.image_url is not None:
        update["image_url"] = body.image_url
    if update:
        update["updated_at"] = now()
        db["category"].update_one({"_id": oid}, {"$set": update})
    return db["category"].find_one({"_id": oid})


# ----------------------- Products -----------------------
def attach_categories(db: Database, products: List[dict]) -> List[dict]:
    ids = {p.get("category_id") for p in products if p.get("category_id")}
    categories = {c["_id"]: c for c in db["category"].find({"_id": {"$in": list(ids)}})}
    for p in products:
        p["category"] = categories.get(p.get("category_id"))
    return products


def list_products(db: Database, page: int = 1, limit: int = 12, category: Optional[str] = None, search: Optional[str] = None) -> dict:
    query = {}
    if category:
        category_doc = db["category"].find_one({"slug": category})
        if category_doc:
            query["category_id"] = category_doc["_id"]
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]

    total = db["product"].count_documents(query)
    products = list(
        db["product"].find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    )
    return {
        "products": attach_categories(db, products),
        "total_pages": math.ceil(total / limit) if limit else 0,
        "current_page": page,
        "total": total,
    }


def get_product(db: Database, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "product ID")})
    if not product:
        raise NotFoundError("Product not found")
    return attach_categories(db, [product])[0]


def get_product_by_slug(db: Database, slug: str) -> dict:
    product = db["product"].find_one({"slug": slug})
    if not product:
        raise NotFoundError("Product not found")
    return attach_categories(db, [product])[0]


def products_in_category(db: Database, category: dict) -> List[dict]:
    return list(db["product"].find({"category_id": category["_id"]}))


def create_product(db: Database, body: ProductCreateBody) -> dict:
    category = resolve_category(db, body.category)
    data = body.model_dump(exclude={"category"})
    product = Product(**data, category_id=category["_id"], slug=product_slug(body.name))
    product_id = create_document(db, "product", product)
    logger.info("Created product %s in category %s", product_id, category["slug"])
    return get_product(db, str(product_id))


def update_product(db: Database, product_id: str, body: ProductUpdateBody) -> dict:
    oid = to_object_id(product_id, "product ID")
    if not db["product"].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("Product not found")

    update = body.model_dump(exclude_none=True, exclude={"category"})
    if body.category is not None:
        update["category_id"] = resolve_category(db, body.category)["_id"]
    if body.name:
        update["slug"] = product_slug(body.name)
    update["updated_at"] = now()
    db["product"].update_one({"_id": oid}, {"$set": update})
    return get_product(db, product_id)


def update_product_image(db: Database, product_id: str, image_url: str) -> dict:
    oid = to_object_id(product_id, "product ID")
    res = db["product"].update_one({"_id": oid}, {"$set": {"image_url": image_url, "updated_at": now()}})
    if res.matched_count == 0:
        raise NotFoundError("Product not found")
    return db["product"].find_one({"_id": oid})


def delete_product(db: Database, product_id: str):
    res = db["product"].delete_one({"_id": to_object_id(product_id, "product ID")})
    if res.deleted_count == 0:
        raise NotFoundError("Product not found")


def add_review(db: Database, product_id: str, user: dict, body: ReviewBody) -> dict:
    """Append a review and recompute the rating aggregate in the same write.

    The write is conditioned on the review count read beforehand, so a review
    that lands in between forces a re-read instead of being overwritten.
    """
    oid = to_object_id(product_id, "product ID")
    review = Review(
        user_id=user["_id"],
        user_name=user.get("name") or user.get("email", ""),
        rating=body.rating,
        comment=body.comment,
    ).model_dump()
    review["created_at"] = now()

    for _ in range(REVIEW_WRITE_ATTEMPTS):
        product = db["product"].find_one({"_id": oid})
        if not product:
            raise NotFoundError("Product not found")
        reviews = list(product.get("reviews") or [])
        if any(r.get("user_id") == user["_id"] for r in reviews):
            raise DuplicateReviewError()

        reviews.append(review)
        average, count = rating_summary(reviews)
        res = db["product"].update_one(
            {"_id": oid, "total_reviews": len(reviews) - 1},
            {"$set": {"reviews": reviews, "average_rating": average, "total_reviews": count, "updated_at": now()}},
        )
        if res.matched_count:
            return review
    raise ConflictError("Product was modified concurrently, try again")
