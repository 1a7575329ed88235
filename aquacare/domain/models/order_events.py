"""Events received from the order service."""

from pydantic import BaseModel, Field

from aquacare.infrastructure.catalog import ProductKind, ProductRef
from aquacare.persistence.models.contract import PaymentStatus


class ProductRefIn(BaseModel):
    """Tagged product reference as sent by the order service."""

    kind: str = Field(default=ProductKind.PRODUCT, pattern="^(Product|Part)$")
    id: int

    def to_ref(self) -> ProductRef:
        return ProductRef(kind=self.kind, id=self.id)


class OrderItemIn(BaseModel):
    """One line of a completed order.

    Without ``plan_id`` every active plan linked to the product applies.
    """

    product: ProductRefIn
    plan_id: int | None = None
    amount: float = 0.0


class OrderCompletedEvent(BaseModel):
    """Order paid and handed to fulfillment."""

    order_id: str
    account_id: int
    items: list[OrderItemIn]
    fulfillment_type: str = "delivery"
    payment_status: str = PaymentStatus.PAID


class OrderCancelledEvent(BaseModel):
    """Order cancelled before delivery, or returned after it."""

    order_id: str
    reason: str = "Order cancelled by user"
