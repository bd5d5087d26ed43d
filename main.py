import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import load_settings
from database import connect
from domain import Domain
from entities import build_store
from errors import DUPLICATE, NotFound, StoreUnavailable, ValidationError

settings = load_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

db = connect(settings)
_domain: Optional[Domain] = None


def get_domain() -> Domain:
    global _domain
    if db is None:
        raise HTTPException(500, "Database not configured")
    if _domain is None:
        _domain = Domain(build_store(db), settings)
    return _domain


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        try:
            build_store(db).ensure_indexes()
        except StoreUnavailable as exc:
            logger.warning("Skipping index creation: %s", exc)
    yield


app = FastAPI(title="Commerce & Content API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping
@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
def validation_handler(request: Request, exc: ValidationError):
    status = 400 if exc.kind == DUPLICATE else 422
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.exception_handler(StoreUnavailable)
def unavailable_handler(request: Request, exc: StoreUnavailable):
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


# Request bodies for commands
class FollowRequest(BaseModel):
    target_id: str


class TagRequest(BaseModel):
    name: str
    type: Literal["product", "post", "general"] = "general"


class StockAdjustment(BaseModel):
    quantity: int
    type: Literal["restock", "sale", "return", "adjustment", "damaged", "transfer"] = "adjustment"
    variant_id: Optional[str] = None
    order_id: Optional[str] = None
    performed_by: Optional[str] = None
    notes: Optional[str] = None


class PriceChange(BaseModel):
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    changed_by: Optional[str] = None
    reason: Optional[str] = None


class CommentRequest(BaseModel):
    author: str
    content: str


class ReactionRequest(BaseModel):
    user: str
    type: Literal["like", "love", "haha", "wow", "sad", "angry"]


class TransitionRequest(BaseModel):
    machine: Literal["status", "payment_status", "fulfillment_status"] = "status"
    target: str


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class VoteRequest(BaseModel):
    user: str
    type: Literal["helpful", "not_helpful"]


class ReplyRequest(BaseModel):
    author: str
    content: str
    author_type: Literal["customer", "seller", "admin"] = "customer"
    is_official: bool = False


class FlagRequest(BaseModel):
    reason: Literal["spam", "inappropriate", "fake", "offensive", "irrelevant", "other"]
    user: Optional[str] = None
    description: Optional[str] = None


@app.get("/")
def read_root():
    return {"message": "Commerce & content backend is running"}


# Users
@app.get("/api/users/active")
def active_users(limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.users.find_active(limit)


@app.get("/api/users/top-contributors")
def top_contributors(limit: int = Query(10, ge=0), domain: Domain = Depends(get_domain)):
    return domain.users.top_contributors(limit)


@app.get("/api/users/by-email/{email}")
def user_by_email(email: str, domain: Domain = Depends(get_domain)):
    return domain.users.find_by_email(email)


@app.post("/api/users/{user_id}/follow")
def follow(user_id: str, body: FollowRequest, domain: Domain = Depends(get_domain)):
    return domain.users.follow(user_id, body.target_id)


@app.post("/api/users/{user_id}/unfollow")
def unfollow(user_id: str, body: FollowRequest, domain: Domain = Depends(get_domain)):
    return domain.users.unfollow(user_id, body.target_id)


@app.get("/api/users/{user_id}/following/{target_id}")
def is_following(user_id: str, target_id: str, domain: Domain = Depends(get_domain)):
    return {"following": domain.users.is_following(user_id, target_id)}


@app.get("/api/users/{user_id}/permissions/{permission}")
def has_permission(user_id: str, permission: str, domain: Domain = Depends(get_domain)):
    return {"allowed": domain.users.has_permission(user_id, permission)}


# Categories
@app.get("/api/categories/tree")
def category_tree(domain: Domain = Depends(get_domain)):
    return list(domain.categories.tree())


@app.get("/api/categories/roots")
def root_categories(domain: Domain = Depends(get_domain)):
    return domain.categories.roots()


@app.get("/api/categories/slug/{slug}")
def category_by_slug(slug: str, domain: Domain = Depends(get_domain)):
    return domain.categories.find_by_slug(slug)


@app.get("/api/categories/{category_id}/descendants")
def category_descendants(category_id: str, domain: Domain = Depends(get_domain)):
    return domain.categories.descendants(category_id)


@app.post("/api/categories/{category_id}/refresh-descendants")
def refresh_category_descendants(category_id: str, domain: Domain = Depends(get_domain)):
    return {"updated": domain.categories.refresh_descendants(category_id)}


# Tags
@app.post("/api/tags/find-or-create")
def find_or_create_tag(body: TagRequest, domain: Domain = Depends(get_domain)):
    return domain.tags.find_or_create(body.name, type=body.type)


@app.get("/api/tags/popular")
def popular_tags(limit: int = Query(20, ge=0), domain: Domain = Depends(get_domain)):
    return domain.tags.popular(limit)


@app.get("/api/tags/trending")
def trending_tags(limit: int = Query(10, ge=0), domain: Domain = Depends(get_domain)):
    return domain.tags.trending(limit)


@app.get("/api/tags/search")
def search_tags(q: str = Query(..., min_length=1), limit: int = Query(10, ge=0),
                domain: Domain = Depends(get_domain)):
    return domain.tags.search(q, limit)


# Products
@app.get("/api/products/active")
def active_products(limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.products.find_active(limit)


@app.get("/api/products/best-sellers")
def best_sellers(limit: int = Query(10, ge=0), domain: Domain = Depends(get_domain)):
    return domain.products.best_sellers(limit)


@app.get("/api/products/top-rated")
def top_rated(limit: int = Query(10, ge=0), min_reviews: int = Query(5, ge=0),
              domain: Domain = Depends(get_domain)):
    return domain.products.top_rated(limit, min_reviews)


@app.get("/api/products/category/{category_id}")
def products_by_category(category_id: str, limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.products.by_category(category_id, limit)


@app.post("/api/products/{product_id}/stock")
def adjust_stock(product_id: str, body: StockAdjustment, domain: Domain = Depends(get_domain)):
    details = body.model_dump(exclude={"quantity", "type", "variant_id"}, exclude_none=True)
    return domain.products.adjust_stock(product_id, body.quantity, body.type, body.variant_id, **details)


@app.post("/api/products/{product_id}/price")
def change_price(product_id: str, body: PriceChange, domain: Domain = Depends(get_domain)):
    return domain.products.change_price(product_id, body.price, body.compare_at_price, body.changed_by, body.reason)


@app.get("/api/products/{product_id}/reviews")
def product_reviews(product_id: str, status: str = "approved", limit: int = Query(50, ge=0),
                    domain: Domain = Depends(get_domain)):
    return domain.reviews.by_product(product_id, status, limit)


@app.get("/api/products/{product_id}/rating-stats")
def product_rating_stats(product_id: str, domain: Domain = Depends(get_domain)):
    return domain.reviews.product_rating_stats(product_id)


# Posts
@app.get("/api/posts/published")
def published_posts(limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.posts.find_published(limit)


@app.get("/api/posts/trending")
def trending_posts(days: int = Query(7, ge=1), limit: int = Query(10, ge=0), domain: Domain = Depends(get_domain)):
    return domain.posts.trending(days, limit)


@app.get("/api/posts/category/{category_id}")
def posts_by_category(category_id: str, limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.posts.by_category(category_id, limit)


@app.post("/api/posts/{post_id}/comments")
def add_comment(post_id: str, body: CommentRequest, domain: Domain = Depends(get_domain)):
    return domain.posts.add_comment(post_id, body.author, body.content)


@app.post("/api/posts/{post_id}/reactions")
def add_reaction(post_id: str, body: ReactionRequest, domain: Domain = Depends(get_domain)):
    return domain.posts.add_reaction(post_id, body.user, body.type)


# Orders
@app.get("/api/orders/pending")
def pending_orders(limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.orders.pending(limit)


@app.get("/api/orders/by-user/{user_id}")
def orders_by_user(user_id: str, limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.orders.by_user(user_id, limit)


@app.get("/api/orders/range")
def orders_in_range(start: datetime, end: datetime, domain: Domain = Depends(get_domain)):
    return domain.orders.by_date_range(start, end)


@app.get("/api/orders/revenue")
def revenue(start: datetime, end: datetime, period: Literal["day", "month", "year"] = "day",
            domain: Domain = Depends(get_domain)):
    return domain.orders.revenue_by_period(start, end, period)


@app.post("/api/orders/{order_id}/transition")
def transition_order(order_id: str, body: TransitionRequest, domain: Domain = Depends(get_domain)):
    return domain.orders.transition(order_id, body.machine, body.target)


@app.post("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, body: Optional[CancelRequest] = None, domain: Domain = Depends(get_domain)):
    return domain.orders.cancel(order_id, body.reason if body else None)


# Reviews
@app.get("/api/reviews/by-user/{user_id}")
def reviews_by_user(user_id: str, limit: int = Query(50, ge=0), domain: Domain = Depends(get_domain)):
    return domain.reviews.by_user(user_id, limit)


@app.post("/api/reviews/{review_id}/votes")
def vote_review(review_id: str, body: VoteRequest, domain: Domain = Depends(get_domain)):
    return domain.reviews.vote(review_id, body.user, body.type)


@app.post("/api/reviews/{review_id}/replies")
def reply_review(review_id: str, body: ReplyRequest, domain: Domain = Depends(get_domain)):
    return domain.reviews.reply(review_id, body.author, body.content, body.author_type, body.is_official)


@app.post("/api/reviews/{review_id}/flags")
def flag_review(review_id: str, body: FlagRequest, domain: Domain = Depends(get_domain)):
    return domain.reviews.flag(review_id, body.reason, body.user, body.description)


# Generic CRUD, registered last so the named routes above win
@app.get("/api/{collection}")
def list_documents(
    collection: str,
    status: Optional[str] = None,
    sort: Optional[str] = Query(None, description="e.g. -created_at,name"),
    limit: int = Query(50, ge=0, le=500),
    domain: Domain = Depends(get_domain),
):
    repo = domain.repository(collection)
    return repo.list({"status": status} if status else None, sort=sort, limit=limit)


@app.post("/api/{collection}", status_code=201)
def create_document(collection: str, payload: Dict[str, Any] = Body(...), domain: Domain = Depends(get_domain)):
    return domain.repository(collection).create(payload)


@app.get("/api/{collection}/{entity_id}")
def get_document(collection: str, entity_id: str, domain: Domain = Depends(get_domain)):
    return domain.repository(collection).get(entity_id)


@app.put("/api/{collection}/{entity_id}")
def update_document(collection: str, entity_id: str, payload: Dict[str, Any] = Body(...),
                    domain: Domain = Depends(get_domain)):
    return domain.repository(collection).update(entity_id, payload)


@app.delete("/api/{collection}/{entity_id}", status_code=204)
def delete_document(collection: str, entity_id: str, domain: Domain = Depends(get_domain)):
    domain.repository(collection).delete(entity_id)
    return Response(status_code=204)


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    if db is not None:
        response["database"] = "✅ Available"
        try:
            collections = db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
