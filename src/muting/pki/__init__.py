"""
Certificate authority and serving identity for the muting webhook.

All key material lives in memory for the lifetime of the process.
"""

from .authority import issue_root
from .identity import IdentityProfile, TLSBundle, issue_leaf, issue_tls
from .keymaterial import KeyMaterial, PEMStore

__all__ = [
    "IdentityProfile",
    "KeyMaterial",
    "PEMStore",
    "TLSBundle",
    "issue_leaf",
    "issue_root",
    "issue_tls",
]
