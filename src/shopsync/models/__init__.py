"""Payload and request models."""

from .payloads import decode_json, normalize_entity
from .webhook import TenantCreate, WebhookDelivery

__all__ = ["decode_json", "normalize_entity", "TenantCreate", "WebhookDelivery"]
