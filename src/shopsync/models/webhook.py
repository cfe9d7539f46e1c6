"""Webhook delivery and API request models."""

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field

from shopsync.core.errors import PayloadError
from shopsync.models.payloads import decode_json


@dataclass(frozen=True)
class WebhookDelivery:
    """
    One inbound webhook, captured once from the request.

    raw_body is the exact byte sequence received. The verifier hashes it
    and the parser decodes it; nothing re-serializes it in between.
    """

    topic: str
    raw_body: bytes
    signature: Optional[str] = None
    shop_domain: Optional[str] = None
    webhook_id: Optional[str] = None

    @property
    def collection(self) -> str:
        return self.topic.split("/", 1)[0]

    def parse(self) -> Any:
        """Decode the raw body. Money values come back as Decimal."""
        try:
            return decode_json(self.raw_body)
        except (ValueError, UnicodeDecodeError) as e:
            raise PayloadError(f"Invalid JSON in {self.topic} webhook body") from e


class TenantCreate(BaseModel):
    """Manual tenant registration (no OAuth)."""

    shop_domain: str = Field("", alias="shopDomain")
    access_token: str = Field("", alias="accessToken")

    class Config:
        populate_by_name = True
