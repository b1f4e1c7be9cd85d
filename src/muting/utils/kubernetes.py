"""
Kubernetes client helpers for the muting webhook.
"""

import logging

from kubernetes import client, config
from urllib3.exceptions import HTTPError

from muting.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Raised by the client when the API server cannot be reached at all
TRANSPORT_ERRORS = (HTTPError, OSError)


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries the in-cluster service account first (when running in a pod) and
    falls back to the local kubeconfig for development.

    Returns:
        Configured Kubernetes API client

    Raises:
        ConfigurationError: If neither configuration can be loaded
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise ConfigurationError(
                f"Unable to load Kubernetes configuration: {e}",
                user_action="Run inside a cluster or provide a kubeconfig",
            ) from e

    return client.ApiClient()
