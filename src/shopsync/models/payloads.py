"""Pydantic models for Shopify entity payloads.

The same models normalize webhook bodies and listing items, so both
ingestion paths persist identical rows for identical input.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from shopsync.core.errors import PayloadError
from shopsync.db.models import utcnow


def decode_json(raw: bytes) -> Any:
    """Decode JSON with every non-integer number kept as an exact Decimal."""
    return json.loads(raw, parse_float=Decimal)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def decimal_string(value: Optional[Decimal]) -> str:
    """Exact decimal string for a money value ("0" when absent)."""
    if value is None:
        return "0"
    return str(value)


class CustomerRef(BaseModel):
    """Customer reference embedded in an order."""

    id: Optional[int] = None

    class Config:
        extra = "allow"


class VariantPayload(BaseModel):
    price: Optional[Decimal] = None

    class Config:
        extra = "allow"


class _EntityPayload(BaseModel):
    id: int = Field(..., description="Platform id")
    created_at: Optional[datetime] = None

    class Config:
        extra = "allow"

    @field_validator("id", mode="before")
    @classmethod
    def _reject_non_integral_id(cls, value):
        if isinstance(value, (float, Decimal)) or isinstance(value, bool):
            raise ValueError("id must be an integer")
        return value

    @property
    def external_id(self) -> str:
        return str(self.id)


class CustomerPayload(_EntityPayload):
    """Customer webhook body / listing item."""

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "email": self.email or None,
            "first_name": self.first_name or None,
            "last_name": self.last_name or None,
            "created_at": to_naive_utc(self.created_at) or utcnow(),
        }


class OrderPayload(_EntityPayload):
    """Order webhook body / listing item (full object or projection)."""

    processed_at: Optional[datetime] = None
    total_price: Optional[Decimal] = None
    customer: Optional[CustomerRef] = None

    def to_row(self) -> Dict[str, Any]:
        customer_id = self.customer.id if self.customer else None
        return {
            "total_price": decimal_string(self.total_price),
            "customer_external_id": str(customer_id) if customer_id is not None else None,
            "created_at": to_naive_utc(self.created_at or self.processed_at) or utcnow(),
        }


class ProductPayload(_EntityPayload):
    """Product webhook body / listing item."""

    title: Optional[str] = None
    variants: List[VariantPayload] = Field(default_factory=list)

    def to_row(self) -> Dict[str, Any]:
        price = self.variants[0].price if self.variants else None
        return {
            "title": self.title or "Untitled",
            "price": decimal_string(price),
            "created_at": to_naive_utc(self.created_at) or utcnow(),
        }


PAYLOAD_MODELS = {
    "customers": CustomerPayload,
    "orders": OrderPayload,
    "products": ProductPayload,
}


def normalize_entity(collection: str, data: Any) -> Tuple[str, Dict[str, Any]]:
    """
    Validate one entity and map it onto its storage row.

    Returns:
        Tuple of (external_id, row fields)

    Raises:
        PayloadError: if the item is not a valid entity of the collection
    """
    model = PAYLOAD_MODELS.get(collection)
    if model is None:
        raise PayloadError(f"Unknown collection: {collection}")
    if not isinstance(data, dict):
        raise PayloadError(f"Expected a JSON object for {collection}")
    try:
        payload = model.model_validate(data)
    except ValidationError as e:
        details = e.errors(include_url=False, include_context=False, include_input=False)
        raise PayloadError(f"Invalid {collection} payload", details=details) from e
    return payload.external_id, payload.to_row()
