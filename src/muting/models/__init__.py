"""Pydantic models for transform rules and the admission wire format."""

from .admission import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    Ingress,
    MalformedObject,
    UnsupportedObject,
    decode_object,
)
from .transform import TransformRule, TransformRules

__all__ = [
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "Ingress",
    "MalformedObject",
    "UnsupportedObject",
    "decode_object",
    "TransformRule",
    "TransformRules",
]
