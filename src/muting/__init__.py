"""
Muting - A mutating admission webhook for Kubernetes Ingress resources.

This webhook provides self-contained host rewriting with:
- Self-issued certificate authority and serving identity
- Idempotent registration of its MutatingWebhookConfiguration
- Ordered suffix rewrite rules from a file or a live ConfigMap
- Non-rejecting mutation policy by default
"""

__version__ = "0.1.0"
