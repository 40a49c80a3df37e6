"""Pydantic request/response schemas for the checkout and payment API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands and from the compact metadata payload.
"""

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartLineSchema(BaseModel):
    name: str = "Item"
    price: float = Field(ge=0)
    quantity: int = Field(ge=1, default=1)


class CheckoutItemSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    total: float = Field(ge=0)
    flavor_ids: list[str] = Field(default_factory=list)
    custom_pack_name: str | None = None


class CheckoutAddressSchema(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    street: str = ""
    street2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""


class CheckoutOrderSchema(BaseModel):
    total: float = Field(ge=0)
    notes: str | None = None
    items: list[CheckoutItemSchema] = Field(min_length=1)
    shipping_address: CheckoutAddressSchema | None = None


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CreateCheckoutSessionRequest(BaseModel):
    items: list[CartLineSchema]
    order_id: str | None = None
    order: CheckoutOrderSchema | None = None
    success_url: str
    cancel_url: str

    @model_validator(mode="after")
    def exactly_one_intent(self):
        if bool(self.order_id) == bool(self.order):
            raise ValueError("Provide either order_id or order, not both")
        return self

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"name": "Dark Chocolate Box", "price": 24.5, "quantity": 2}],
                    "order": {
                        "total": 49.0,
                        "notes": "Gift wrap please",
                        "items": [
                            {
                                "product_id": "prod-001",
                                "quantity": 2,
                                "price": 24.5,
                                "total": 49.0,
                                "flavor_ids": ["fl-7"],
                            }
                        ],
                    },
                    "success_url": "https://shop.example.com/orders/success",
                    "cancel_url": "https://shop.example.com/cart",
                }
            ]
        }
    }


class CheckoutSessionResponse(BaseModel):
    url: str
    session_id: str


# ---------------------------------------------------------------------------
# Webhook / admin
# ---------------------------------------------------------------------------
class WebhookAckResponse(BaseModel):
    received: bool = True


class SweepReportResponse(BaseModel):
    fixed_count: int
    failed_count: int
    unresolved_count: int


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    flavor_ids: list[str] = Field(default_factory=list)
    custom_pack_name: str | None = None


class OrderAddressSchema(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    street1: str
    street2: str = ""
    city: str
    state: str
    postal_code: str
    country: str


class CreateOrderRequest(BaseModel):
    items: list[OrderItemSchema] = Field(min_length=1)
    total: float = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    notes: str | None = None
    shipping_address: OrderAddressSchema | None = None


class OrderIdResponse(BaseModel):
    order_id: str


class OrderResponse(BaseModel):
    order_id: str
    status: str
    payment_status: str
    total: float
    currency: str
    notes: str | None = None
    items: list[OrderItemSchema]
    shipping_address: OrderAddressSchema | None = None
    shipment_id: str | None = None
    carrier: str | None = None
    tracking_number: str | None = None
    tracking_status: str | None = None


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
