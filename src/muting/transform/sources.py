"""
Transform rule sources.

The engine is source-agnostic; a source only has to return the current
ordered rule list. A file is read once at startup, whereas a ConfigMap is
read again on every call so that edits take effect without a restart.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Protocol

import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from muting.constants import (
    DEFAULT_TRANSFORMS_KEY,
    ERROR_CONFIGMAP_KEY_MISSING,
    ERROR_CONFIGMAP_NOT_FOUND,
)
from muting.errors import ConfigurationError, TransformError
from muting.models.transform import TransformRules
from muting.observability.tracing import traced
from muting.utils.kubernetes import TRANSPORT_ERRORS

logger = logging.getLogger(__name__)


class RuleSource(Protocol):
    """Supplies the ordered transform rules."""

    async def read(self) -> TransformRules: ...

    def describe(self) -> str: ...


def parse_rules(text: str, origin: str) -> TransformRules:
    """
    Parse transforms YAML.

    Args:
        text: YAML document
        origin: Where the document came from, for error messages

    Returns:
        Parsed rules; an empty document yields no rules

    Raises:
        TransformError: If the document is not valid YAML or does not
            match the transforms schema
    """
    try:
        document: Any = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise TransformError(f"Unable to decode transforms from {origin}: {e}", e) from e

    if document is None:
        return TransformRules()
    if not isinstance(document, dict):
        raise TransformError(f"Transforms in {origin} must be a mapping")

    try:
        return TransformRules.model_validate(document)
    except ValidationError as e:
        raise TransformError(f"Invalid transforms in {origin}: {e}", e) from e


class FileRuleSource:
    """Rules loaded once from a YAML file."""

    def __init__(self, path: str | Path):
        """
        Load rules from ``path``.

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        self.path = Path(path)
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Unable to read transform file: {self.path}: {e}",
                user_action="Check MUTING_TRANSFORMS_FILE points at a readable file",
            ) from e

        try:
            self._rules = parse_rules(text, str(self.path))
        except TransformError as e:
            raise ConfigurationError(str(e.args[0])) from e

    async def read(self) -> TransformRules:
        return self._rules

    def describe(self) -> str:
        return f"file {self.path}"


class ConfigMapRuleSource:
    """Rules read from a ConfigMap key on every call."""

    def __init__(
        self,
        core_api: client.CoreV1Api,
        name: str,
        namespace: str,
        key: str = DEFAULT_TRANSFORMS_KEY,
    ):
        self.core_api = core_api
        self.name = name
        self.namespace = namespace
        self.key = key

    def _read_sync(self) -> str:
        """Synchronous helper to fetch the ConfigMap (runs in thread pool)."""
        try:
            config_map = self.core_api.read_namespaced_config_map(
                name=self.name, namespace=self.namespace
            )
        except ApiException as e:
            if e.status == 404:
                raise TransformError(
                    ERROR_CONFIGMAP_NOT_FOUND.format(self.name, self.namespace), e
                ) from e
            raise TransformError(
                f"Unable to read ConfigMap {self.namespace}/{self.name}: {e.reason}", e
            ) from e
        except TRANSPORT_ERRORS as e:
            raise TransformError(
                f"Unable to reach the API server for ConfigMap "
                f"{self.namespace}/{self.name}: {e}",
                e,
            ) from e

        data = config_map.data or {}
        if self.key not in data:
            raise TransformError(
                ERROR_CONFIGMAP_KEY_MISSING.format(self.name, self.namespace, self.key)
            )
        return data[self.key]

    @traced("read_configmap_rules")
    async def read(self) -> TransformRules:
        """
        Fetch and parse the current rules.

        Raises:
            TransformError: If the ConfigMap or key is missing, the API call
                fails, the API server is unreachable, or the content is invalid
        """
        text = await asyncio.to_thread(self._read_sync)
        rules = parse_rules(text, f"ConfigMap {self.namespace}/{self.name}")
        logger.debug(
            f"Read {len(rules.transforms)} transform rule(s) from ConfigMap "
            f"{self.namespace}/{self.name}"
        )
        return rules

    def describe(self) -> str:
        return f"ConfigMap {self.namespace}/{self.name} key {self.key}"
