"""
Cluster-facing services for the muting webhook.
"""

from .webhook_registrar import (
    DeclarationOptions,
    ReconcileResult,
    WebhookRegistrar,
    build_declaration,
    build_url,
)

__all__ = [
    "DeclarationOptions",
    "ReconcileResult",
    "WebhookRegistrar",
    "build_declaration",
    "build_url",
]
