"""
Mutating admission handlers.

Handlers decide a single AdmissionRequest and return an AdmissionResponse;
the HTTPS transport lives in ``muting.server``.
"""

from .ingress import IngressMutator, rewrite_hosts

__all__ = ["IngressMutator", "rewrite_hosts"]
