"""
Database Schemas for the commerce & content platform

Each Pydantic model validates the writable shape of one MongoDB collection.
Collection name is the lowercase of the class name (User -> "user").
Derived fields (stats, counters, hierarchy) are declared here with their
defaults but are always recomputed by the store before a write.
References to other documents are stored as ObjectId strings.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from identifiers import slugify


def new_id() -> str:
    return str(ObjectId())


class Embedded(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class Seo(Embedded):
    meta_title: Optional[str] = Field(None, max_length=70)
    meta_description: Optional[str] = Field(None, max_length=160)
    focus_keyword: Optional[str] = None
    canonical_url: Optional[str] = None


class Dimensions(Embedded):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


# ---------------------------------
# User
# ---------------------------------

class Address(Embedded):
    id: str = Field(default_factory=new_id)
    street: Optional[str] = None
    city: str
    state: Optional[str] = None
    country: str
    zip_code: Optional[str] = None
    is_default: bool = False
    type: Literal["home", "work", "shipping", "billing"] = "home"


class SocialLink(Embedded):
    platform: Literal["twitter", "linkedin", "github", "facebook", "instagram", "youtube"]
    url: str
    username: Optional[str] = None


class NotificationPreferences(Embedded):
    email: bool = True
    push: bool = True
    sms: bool = False
    marketing: bool = False


class PrivacyPreferences(Embedded):
    profile_visibility: Literal["public", "private", "friends"] = "public"
    show_email: bool = False
    show_activity: bool = True


class Preferences(Embedded):
    theme: Literal["light", "dark", "system"] = "system"
    language: str = "en"
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    privacy: PrivacyPreferences = Field(default_factory=PrivacyPreferences)


class Profile(Embedded):
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    avatar: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    date_of_birth: Optional[datetime] = None
    gender: Optional[Literal["male", "female", "other", "prefer_not_to_say"]] = None
    phone: Optional[str] = None


class ActivityLogEntry(Embedded):
    id: str = Field(default_factory=new_id)
    action: Literal["login", "logout", "purchase", "post_created", "comment", "profile_update", "password_change"]
    timestamp: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class UserStats(Embedded):
    total_posts: int = 0
    total_comments: int = 0
    total_likes_received: int = 0
    total_likes_given: int = 0
    total_orders: int = 0
    total_spent: float = 0
    reputation: int = 0


class Membership(Embedded):
    type: Literal["free", "basic", "premium", "enterprise"] = "free"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    auto_renew: bool = False


class User(Embedded):
    email: EmailStr = Field(..., description="Email address, unique, stored lowercased")
    username: str = Field(..., min_length=3, max_length=30)
    password: Optional[str] = Field(None, min_length=8, description="Plain password, hashed before storage")
    password_hash: Optional[str] = Field(None, description="Hashed password")
    profile: Profile
    addresses: List[Address] = Field(default_factory=list)
    social_links: List[SocialLink] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    role: Literal["user", "moderator", "admin", "super_admin"] = "user"
    permissions: List[Literal["create_post", "edit_post", "delete_post", "manage_users",
                              "manage_products", "view_analytics"]] = Field(default_factory=list)
    status: Literal["active", "inactive", "suspended", "pending_verification", "deleted"] = "pending_verification"
    email_verified: bool = False
    email_verified_at: Optional[datetime] = None
    followers: List[str] = Field(default_factory=list)
    following: List[str] = Field(default_factory=list)
    blocked_users: List[str] = Field(default_factory=list)
    stats: UserStats = Field(default_factory=UserStats)
    activity_log: List[ActivityLogEntry] = Field(default_factory=list)
    last_login_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None
    login_count: int = 0
    membership: Membership = Field(default_factory=Membership)
    interests: List[Literal["technology", "sports", "music", "art", "travel", "food", "fashion",
                            "gaming", "books", "movies", "fitness", "photography"]] = Field(default_factory=list)
    referred_by: Optional[str] = None
    referral_code: Optional[str] = None
    referral_count: int = 0

    @field_validator("email", "username", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


# ---------------------------------
# Category & Tag
# ---------------------------------

class CategoryImage(Embedded):
    url: Optional[str] = None
    thumbnail: Optional[str] = None
    alt_text: Optional[str] = None


class CategoryStats(Embedded):
    product_count: int = 0
    post_count: int = 0
    total_views: int = 0
    total_sales: int = 0
    total_revenue: float = 0


class CategoryAttribute(Embedded):
    name: str
    type: Literal["select", "multiselect", "range", "color", "size"] = "select"
    values: List[str] = Field(default_factory=list)
    is_filterable: bool = True
    is_required: bool = False
    display_order: int = 0


class PriceRange(Embedded):
    min: float = 0
    max: float = 0
    average: float = 0


class Category(Embedded):
    name: str = Field(..., min_length=2, max_length=100)
    slug: Optional[str] = Field(None, description="URL-safe identifier, generated from name")
    description: Optional[str] = Field(None, max_length=1000)
    type: Literal["product", "post", "both"] = "both"
    parent: Optional[str] = None
    ancestors: List[str] = Field(default_factory=list)
    level: int = 0
    path: Optional[str] = None
    image: Optional[CategoryImage] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    display_order: int = 0
    show_in_menu: bool = True
    show_in_filters: bool = True
    show_in_footer: bool = False
    status: Literal["active", "inactive", "draft"] = "active"
    seo: Seo = Field(default_factory=Seo)
    stats: CategoryStats = Field(default_factory=CategoryStats)
    featured_products: List[str] = Field(default_factory=list)
    attributes: List[CategoryAttribute] = Field(default_factory=list)
    price_range: PriceRange = Field(default_factory=PriceRange)
    commission_rate: float = Field(0, ge=0, le=100)
    tax_class: str = "standard"
    custom_fields: Optional[Dict[str, Any]] = None
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None

    @field_validator("slug", mode="before")
    @classmethod
    def _slugify(cls, value):
        return slugify(value) if isinstance(value, str) else value

    @field_validator("parent", mode="before")
    @classmethod
    def _blank_parent_is_root(cls, value):
        return None if isinstance(value, str) and not value.strip() else value


class TagStats(Embedded):
    product_count: int = 0
    post_count: int = 0
    total_usage: int = 0
    trending_score: float = 0
    last_used_at: Optional[datetime] = None


class UsageHistoryEntry(Embedded):
    date: Optional[datetime] = None
    count: int = 0


class Tag(Embedded):
    name: str = Field(..., min_length=2, max_length=50)
    slug: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    type: Literal["product", "post", "general"] = "general"
    color: str = "#6B7280"
    icon: Optional[str] = None
    stats: TagStats = Field(default_factory=TagStats)
    usage_history: List[UsageHistoryEntry] = Field(default_factory=list)
    related_tags: List[str] = Field(default_factory=list)
    synonyms: List[str] = Field(default_factory=list)
    status: Literal["active", "inactive", "pending"] = "active"
    is_featured: bool = False
    is_trending: bool = False
    seo: Seo = Field(default_factory=Seo)
    created_by: Optional[str] = None

    @field_validator("slug", mode="before")
    @classmethod
    def _slugify(cls, value):
        return slugify(value) if isinstance(value, str) else value


# ---------------------------------
# Product
# ---------------------------------

class ProductImage(Embedded):
    id: str = Field(default_factory=new_id)
    url: str
    thumbnail: Optional[str] = None
    alt_text: Optional[str] = None
    is_primary: bool = False
    order: int = 0
    color: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class VariantAttributes(Embedded):
    color: Optional[str] = None
    size: Optional[str] = None
    material: Optional[str] = None
    style: Optional[str] = None


class Variant(Embedded):
    id: str = Field(default_factory=new_id)
    sku: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    attributes: VariantAttributes = Field(default_factory=VariantAttributes)
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    stock: int = 0
    low_stock_threshold: int = 5
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    barcode: Optional[str] = None
    images: List[ProductImage] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("sku", mode="before")
    @classmethod
    def _sku_uppercase(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class PriceHistoryEntry(Embedded):
    id: str = Field(default_factory=new_id)
    price: float
    compare_at_price: Optional[float] = None
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    timestamp: Optional[datetime] = None


class InventoryLogEntry(Embedded):
    id: str = Field(default_factory=new_id)
    type: Literal["restock", "sale", "return", "adjustment", "damaged", "transfer"]
    quantity: int
    previous_stock: Optional[int] = None
    new_stock: Optional[int] = None
    variant_id: Optional[str] = None
    order_id: Optional[str] = None
    performed_by: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


class Specification(Embedded):
    group: Optional[str] = None
    name: str
    value: str
    unit: Optional[str] = None


class Faq(Embedded):
    id: str = Field(default_factory=new_id)
    question: str
    answer: str
    asked_by: Optional[str] = None
    answered_by: Optional[str] = None
    is_published: bool = True
    helpful_count: int = 0


class ProductDescription(Embedded):
    short: Optional[str] = Field(None, max_length=500)
    full: Optional[str] = Field(None, max_length=10000)
    features: List[str] = Field(default_factory=list)


class Pricing(Embedded):
    base_price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    taxable: bool = True
    tax_class: Literal["standard", "reduced", "zero"] = "standard"


class VariantOption(Embedded):
    name: str
    values: List[str] = Field(default_factory=list)


class Inventory(Embedded):
    stock: int = Field(0, ge=0)
    low_stock_threshold: int = 10
    track_quantity: bool = True
    allow_backorder: bool = False
    max_per_order: Optional[int] = None
    warehouse: Optional[str] = None
    location: Optional[str] = None


class ProductShipping(Embedded):
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    requires_shipping: bool = True
    free_shipping: bool = False
    shipping_class: Optional[str] = None
    origin_country: Optional[str] = None
    hs_code: Optional[str] = None


class ReviewStats(Embedded):
    average_rating: float = Field(0, ge=0, le=5)
    total_reviews: int = 0
    rating_distribution: Dict[str, int] = Field(default_factory=lambda: {str(i): 0 for i in range(1, 6)})
    recommendation_percentage: float = 0


class SalesStats(Embedded):
    total_sold: int = 0
    total_revenue: float = 0
    total_orders: int = 0
    average_order_quantity: float = 0
    return_rate: float = 0
    last_sold_at: Optional[datetime] = None


class SalesHistoryEntry(Embedded):
    id: str = Field(default_factory=new_id)
    period: str
    period_type: Literal["daily", "weekly", "monthly"]
    quantity: int = 0
    revenue: float = 0
    orders: int = 0


class ViewStats(Embedded):
    total_views: int = 0
    unique_views: int = 0
    add_to_cart_count: int = 0
    wishlist_count: int = 0
    conversion_rate: float = 0


class ProductFlags(Embedded):
    is_new: bool = True
    is_featured: bool = False
    is_best_seller: bool = False
    is_on_sale: bool = False
    is_limited_edition: bool = False
    is_exclusive: bool = False


class Promotion(Embedded):
    type: Literal["percentage", "fixed", "buy_x_get_y", "bundle"]
    value: float = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    code: Optional[str] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0


class Warranty(Embedded):
    has_warranty: bool = False
    duration: Optional[int] = None
    type: Optional[str] = None
    description: Optional[str] = None


class ReturnPolicy(Embedded):
    returnable: bool = True
    return_window: int = 30
    restocking_fee: float = 0
    conditions: Optional[str] = None


class Product(Embedded):
    name: str = Field(..., min_length=2, max_length=200)
    slug: Optional[str] = None
    sku: str = Field(..., min_length=1)
    description: ProductDescription = Field(default_factory=ProductDescription)
    category: str = Field(..., min_length=1, description="Category id")
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    type: Literal["physical", "digital", "service", "subscription", "bundle"] = "physical"
    pricing: Pricing
    price_history: List[PriceHistoryEntry] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    has_variants: bool = False
    variant_options: List[VariantOption] = Field(default_factory=list)
    images: List[ProductImage] = Field(default_factory=list)
    inventory: Inventory = Field(default_factory=Inventory)
    inventory_log: List[InventoryLogEntry] = Field(default_factory=list)
    shipping: ProductShipping = Field(default_factory=ProductShipping)
    seo: Seo = Field(default_factory=Seo)
    specifications: List[Specification] = Field(default_factory=list)
    review_stats: ReviewStats = Field(default_factory=ReviewStats)
    sales_stats: SalesStats = Field(default_factory=SalesStats)
    sales_history: List[SalesHistoryEntry] = Field(default_factory=list)
    view_stats: ViewStats = Field(default_factory=ViewStats)
    faqs: List[Faq] = Field(default_factory=list)
    related_products: List[str] = Field(default_factory=list)
    cross_sell_products: List[str] = Field(default_factory=list)
    up_sell_products: List[str] = Field(default_factory=list)
    status: Literal["draft", "active", "inactive", "discontinued", "out_of_stock", "coming_soon"] = "draft"
    visibility: Literal["visible", "hidden", "search_only", "catalog_only"] = "visible"
    published_at: Optional[datetime] = None
    flags: ProductFlags = Field(default_factory=ProductFlags)
    promotions: List[Promotion] = Field(default_factory=list)
    warranty: Warranty = Field(default_factory=Warranty)
    return_policy: ReturnPolicy = Field(default_factory=ReturnPolicy)
    internal_notes: Optional[str] = None
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None

    @field_validator("sku", mode="before")
    @classmethod
    def _sku_uppercase(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("slug", mode="before")
    @classmethod
    def _slugify(cls, value):
        return slugify(value) if isinstance(value, str) else value


# ---------------------------------
# Post
# ---------------------------------

ReactionType = Literal["like", "love", "haha", "wow", "sad", "angry"]


class Reaction(Embedded):
    id: str = Field(default_factory=new_id)
    user: str
    type: ReactionType
    created_at: Optional[datetime] = None


class Reply(Embedded):
    id: str = Field(default_factory=new_id)
    author: str
    content: str = Field(..., min_length=1, max_length=2000)
    mentions: List[str] = Field(default_factory=list)
    reactions: List[Reaction] = Field(default_factory=list)
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Comment(Embedded):
    id: str = Field(default_factory=new_id)
    author: str
    content: str = Field(..., min_length=1, max_length=5000)
    mentions: List[str] = Field(default_factory=list)
    reactions: List[Reaction] = Field(default_factory=list)
    replies: List[Reply] = Field(default_factory=list)
    is_pinned: bool = False
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Media(Embedded):
    id: str = Field(default_factory=new_id)
    type: Literal["image", "video", "audio", "document", "embed"]
    url: str
    thumbnail: Optional[str] = None
    caption: Optional[str] = Field(None, max_length=500)
    alt_text: Optional[str] = None
    order: int = 0


class Revision(Embedded):
    id: str = Field(default_factory=new_id)
    title: Optional[str] = None
    content: Optional[str] = None
    edited_by: Optional[str] = None
    edit_reason: Optional[str] = None
    timestamp: Optional[datetime] = None


class Collaborator(Embedded):
    user: str
    role: Literal["editor", "reviewer", "contributor"] = "contributor"
    added_at: Optional[datetime] = None


class FeaturedImage(Embedded):
    url: Optional[str] = None
    alt_text: Optional[str] = None
    caption: Optional[str] = None


class PostStats(Embedded):
    views: int = 0
    unique_views: int = 0
    read_time: int = 0
    reactions_count: int = 0
    comments_count: int = 0
    shares_count: int = 0
    bookmarks_count: int = 0


class Series(Embedded):
    name: Optional[str] = None
    part: Optional[int] = None
    total_parts: Optional[int] = None


class Post(Embedded):
    title: str = Field(..., min_length=3, max_length=200)
    slug: Optional[str] = None
    content: str = Field(..., min_length=1)
    excerpt: Optional[str] = Field(None, max_length=500)
    author: str = Field(..., min_length=1, description="User id")
    collaborators: List[Collaborator] = Field(default_factory=list)
    featured_image: Optional[FeaturedImage] = None
    media: List[Media] = Field(default_factory=list)
    category: str = Field(..., min_length=1, description="Category id")
    tags: List[str] = Field(default_factory=list)
    type: Literal["article", "tutorial", "review", "news", "opinion", "guide", "listicle",
                  "video", "podcast"] = "article"
    format: Literal["standard", "gallery", "video", "audio", "quote", "link"] = "standard"
    status: Literal["draft", "pending_review", "scheduled", "published", "archived", "trash"] = "draft"
    visibility: Literal["public", "private", "password_protected", "members_only"] = "public"
    published_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    reactions: List[Reaction] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    stats: PostStats = Field(default_factory=PostStats)
    related_posts: List[str] = Field(default_factory=list)
    series: Optional[Series] = None
    mentioned_products: List[str] = Field(default_factory=list)
    seo: Seo = Field(default_factory=Seo)
    revisions: List[Revision] = Field(default_factory=list)
    current_revision: int = 1
    is_featured: bool = False
    is_pinned: bool = False
    allow_comments: bool = True
    moderation_status: Literal["approved", "pending", "flagged", "rejected"] = "approved"
    moderation_notes: Optional[str] = None
    difficulty: Optional[Literal["beginner", "intermediate", "advanced", "expert"]] = None
    language: str = "en"

    @field_validator("slug", mode="before")
    @classmethod
    def _slugify(cls, value):
        return slugify(value) if isinstance(value, str) else value


# ---------------------------------
# Order
# ---------------------------------

class ItemDiscount(Embedded):
    type: Optional[Literal["percentage", "fixed"]] = None
    value: Optional[float] = None
    code: Optional[str] = None


class ItemAttributes(Embedded):
    color: Optional[str] = None
    size: Optional[str] = None
    customization: Optional[str] = None


class OrderItem(Embedded):
    id: str = Field(default_factory=new_id)
    product: str = Field(..., min_length=1, description="Product id")
    variant: Optional[str] = None
    name: str = Field(..., min_length=1, description="Snapshot at time of order")
    sku: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0, description="Price at time of order")
    original_price: Optional[float] = None
    discount: Optional[ItemDiscount] = None
    subtotal: Optional[float] = None
    tax: float = 0
    total: Optional[float] = None
    weight: Optional[float] = None
    attributes: Optional[ItemAttributes] = None
    status: Literal["pending", "confirmed", "processing", "shipped", "delivered", "returned",
                    "refunded", "cancelled"] = "pending"


class ShippingAddress(Embedded):
    first_name: str
    last_name: str
    company: Optional[str] = None
    street1: str
    street2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str
    phone: Optional[str] = None
    email: Optional[str] = None
    instructions: Optional[str] = None


class OrderPricing(Embedded):
    subtotal: Optional[float] = Field(None, ge=0)
    item_discount: float = 0
    order_discount: float = 0
    coupon_discount: float = 0
    shipping: float = 0
    shipping_discount: float = 0
    tax: float = 0
    tax_rate: Optional[float] = None
    total: Optional[float] = Field(None, ge=0)
    currency: str = "USD"


class Coupon(Embedded):
    code: str
    type: Literal["percentage", "fixed", "free_shipping"]
    value: float = 0
    discount: float = 0


class Payment(Embedded):
    id: str = Field(default_factory=new_id)
    method: Literal["credit_card", "debit_card", "paypal", "stripe", "bank_transfer", "cod", "wallet", "crypto"]
    status: Literal["pending", "authorized", "captured", "partially_refunded", "refunded", "failed",
                    "cancelled"] = "pending"
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    paid_amount: Optional[float] = None


class Refund(Embedded):
    id: str = Field(default_factory=new_id)
    amount: float = Field(..., ge=0)
    reason: Literal["customer_request", "damaged", "wrong_item", "not_as_described", "late_delivery", "other"]
    notes: Optional[str] = None
    status: Literal["pending", "approved", "processed", "rejected"] = "pending"
    items: List[str] = Field(default_factory=list)
    processed_by: Optional[str] = None
    transaction_id: Optional[str] = None


class OrderShipping(Embedded):
    method: Literal["standard", "express", "overnight", "pickup", "free"] = "standard"
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    cost: float = 0
    status: Literal["pending", "processing", "shipped", "in_transit", "out_for_delivery", "delivered",
                    "failed", "returned"] = "pending"


class TimelineEntry(Embedded):
    id: str = Field(default_factory=new_id)
    event: Literal["created", "confirmed", "payment_received", "processing", "shipped", "delivered",
                   "cancelled", "refund_requested", "refunded", "note_added"]
    description: Optional[str] = None
    performed_by: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None


class OrderFlags(Embedded):
    is_gift: bool = False
    gift_message: Optional[str] = None
    gift_wrapping: bool = False
    is_priority: bool = False
    requires_signature: bool = False
    is_subscription: bool = False
    is_fraudulent: bool = False
    is_test: bool = False


class Order(Embedded):
    order_number: Optional[str] = None
    user: str = Field(..., min_length=1, description="User id")
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    is_guest_checkout: bool = False
    items: List[OrderItem] = Field(..., min_length=1)
    item_count: int = 0
    shipping_address: ShippingAddress
    billing_address: Optional[ShippingAddress] = None
    same_as_shipping: bool = True
    pricing: OrderPricing = Field(default_factory=OrderPricing)
    coupons: List[Coupon] = Field(default_factory=list)
    payment: Optional[Payment] = None
    payments: List[Payment] = Field(default_factory=list)
    shipping: Optional[OrderShipping] = None
    status: Literal["pending", "confirmed", "processing", "partially_shipped", "shipped", "delivered",
                    "completed", "cancelled", "refunded", "on_hold", "failed"] = "pending"
    payment_status: Literal["pending", "paid", "partially_paid", "refunded", "partially_refunded",
                            "failed"] = "pending"
    fulfillment_status: Literal["unfulfilled", "partially_fulfilled", "fulfilled", "returned"] = "unfulfilled"
    refunds: List[Refund] = Field(default_factory=list)
    total_refunded: float = 0
    timeline: List[TimelineEntry] = Field(default_factory=list)
    confirmed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    source: Literal["web", "mobile_app", "pos", "phone", "marketplace", "social", "api"] = "web"
    channel: Optional[str] = None
    flags: OrderFlags = Field(default_factory=OrderFlags)
    customer_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    parent_order: Optional[str] = None
    child_orders: List[str] = Field(default_factory=list)
    warehouse: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


# ---------------------------------
# Review
# ---------------------------------

class ProductTarget(Embedded):
    type: Literal["product"] = "product"
    id: str = Field(..., min_length=1)


class PostTarget(Embedded):
    type: Literal["post"] = "post"
    id: str = Field(..., min_length=1)


class UserTarget(Embedded):
    type: Literal["user"] = "user"
    id: str = Field(..., min_length=1)


class OrderTarget(Embedded):
    type: Literal["order"] = "order"
    id: str = Field(..., min_length=1)


ReviewTarget = Annotated[
    Union[ProductTarget, PostTarget, UserTarget, OrderTarget],
    Field(discriminator="type"),
]


class Vote(Embedded):
    user: str
    type: Literal["helpful", "not_helpful"]
    created_at: Optional[datetime] = None


class ReviewReply(Embedded):
    id: str = Field(default_factory=new_id)
    author: str
    author_type: Literal["customer", "seller", "admin"] = "customer"
    content: str = Field(..., min_length=1, max_length=2000)
    is_official: bool = False
    votes: List[Vote] = Field(default_factory=list)
    helpful_count: int = 0
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class RatingBreakdown(Embedded):
    overall: int = Field(..., ge=1, le=5)
    quality: Optional[int] = Field(None, ge=1, le=5)
    value: Optional[int] = Field(None, ge=1, le=5)
    shipping: Optional[int] = Field(None, ge=1, le=5)
    packaging: Optional[int] = Field(None, ge=1, le=5)
    customer_service: Optional[int] = Field(None, ge=1, le=5)
    ease_of_use: Optional[int] = Field(None, ge=1, le=5)
    durability: Optional[int] = Field(None, ge=1, le=5)


class ReviewMedia(Embedded):
    id: str = Field(default_factory=new_id)
    type: Literal["image", "video"]
    url: str
    thumbnail: Optional[str] = None
    caption: Optional[str] = None


class ReviewFlag(Embedded):
    user: Optional[str] = None
    reason: Literal["spam", "inappropriate", "fake", "offensive", "irrelevant", "other"]
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class Sentiment(Embedded):
    score: Optional[float] = Field(None, ge=-1, le=1)
    magnitude: Optional[float] = Field(None, ge=0)
    label: Optional[Literal["positive", "neutral", "negative", "mixed"]] = None


class ReviewedVariant(Embedded):
    id: Optional[str] = None
    name: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None


class Review(Embedded):
    # flat target form as submitted; the resolver folds it into ``target``
    target_type: Optional[Literal["product", "post", "user", "order"]] = None
    product: Optional[str] = None
    post: Optional[str] = None
    target_user: Optional[str] = None
    order: Optional[str] = None
    target: Optional[ReviewTarget] = None

    variant: Optional[ReviewedVariant] = None
    user: str = Field(..., min_length=1, description="Reviewer id")
    is_verified_purchase: bool = False
    rating: RatingBreakdown
    title: Optional[str] = Field(None, max_length=200)
    content: str = Field(..., min_length=10, max_length=10000)
    pros: List[Annotated[str, Field(max_length=200)]] = Field(default_factory=list)
    cons: List[Annotated[str, Field(max_length=200)]] = Field(default_factory=list)
    would_recommend: Optional[bool] = None
    recommendation_score: Optional[float] = Field(None, ge=0, le=10)
    media: List[ReviewMedia] = Field(default_factory=list)
    votes: List[Vote] = Field(default_factory=list)
    helpful_count: int = 0
    not_helpful_count: int = 0
    helpfulness_score: int = 0
    replies: List[ReviewReply] = Field(default_factory=list)
    reply_count: int = 0
    has_seller_reply: bool = False
    status: Literal["pending", "approved", "rejected", "flagged", "hidden"] = "pending"
    moderation_notes: Optional[str] = None
    moderated_by: Optional[str] = None
    moderated_at: Optional[datetime] = None
    flags: List[ReviewFlag] = Field(default_factory=list)
    flag_count: int = 0
    sentiment: Optional[Sentiment] = None
    keywords: List[str] = Field(default_factory=list)
    is_featured: bool = False
    is_pinned: bool = False
    source: Literal["website", "mobile_app", "email", "imported", "social"] = "website"
