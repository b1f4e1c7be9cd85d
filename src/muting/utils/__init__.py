"""Utility helpers for the muting webhook."""

from .kubernetes import TRANSPORT_ERRORS, get_kubernetes_client

__all__ = ["TRANSPORT_ERRORS", "get_kubernetes_client"]
