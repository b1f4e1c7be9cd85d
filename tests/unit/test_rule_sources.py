"""
Unit tests for transform rule sources.

The ConfigMap source is exercised against a mocked CoreV1Api.
"""

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from muting.errors import ConfigurationError, TransformError
from muting.transform.sources import (
    ConfigMapRuleSource,
    FileRuleSource,
    parse_rules,
)

TRANSFORMS_YAML = """
transforms:
  - from:
      - example.com
      - example.org
    to: internal.example.com
  - from: [legacy.test]
    to: example.net
"""


def _config_map(data):
    return client.V1ConfigMap(
        metadata=client.V1ObjectMeta(name="muting", namespace="default"),
        data=data,
    )


class TestParseRules:
    """Tests for ``parse_rules``."""

    def test_parses_ordered_rules(self):
        rules = parse_rules(TRANSFORMS_YAML, "test")
        assert [r.to for r in rules.transforms] == ["internal.example.com", "example.net"]
        assert rules.transforms[0].from_ == ["example.com", "example.org"]

    def test_empty_document_yields_no_rules(self):
        assert parse_rules("", "test").transforms == []

    def test_invalid_yaml_raises(self):
        with pytest.raises(TransformError, match="Unable to decode transforms"):
            parse_rules("transforms: [unclosed", "test")

    def test_non_mapping_raises(self):
        with pytest.raises(TransformError, match="must be a mapping"):
            parse_rules("- a\n- b\n", "test")

    def test_schema_violation_raises(self):
        with pytest.raises(TransformError, match="Invalid transforms"):
            parse_rules("transforms:\n  - from: [a.com]\n", "test")


class TestFileRuleSource:
    """Tests for ``FileRuleSource``."""

    @pytest.mark.asyncio
    async def test_reads_file_once(self, tmp_path):
        path = tmp_path / "transforms.yaml"
        path.write_text(TRANSFORMS_YAML)

        source = FileRuleSource(path)
        path.write_text("transforms: []\n")

        rules = await source.read()
        assert len(rules.transforms) == 2
        assert str(path) in source.describe()

    def test_missing_file_is_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unable to read transform file"):
            FileRuleSource(tmp_path / "absent.yaml")

    def test_invalid_file_is_configuration_error(self, tmp_path):
        path = tmp_path / "transforms.yaml"
        path.write_text("transforms: {")
        with pytest.raises(ConfigurationError):
            FileRuleSource(path)


class TestConfigMapRuleSource:
    """Tests for ``ConfigMapRuleSource``."""

    @pytest.mark.asyncio
    async def test_reads_key(self):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.return_value = _config_map(
            {"transforms.yaml": TRANSFORMS_YAML}
        )

        source = ConfigMapRuleSource(core_api, "muting", "default")
        rules = await source.read()

        assert len(rules.transforms) == 2
        core_api.read_namespaced_config_map.assert_called_once_with(
            name="muting", namespace="default"
        )

    @pytest.mark.asyncio
    async def test_reads_fresh_on_every_call(self):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.side_effect = [
            _config_map({"transforms.yaml": TRANSFORMS_YAML}),
            _config_map({"transforms.yaml": "transforms: []\n"}),
        ]

        source = ConfigMapRuleSource(core_api, "muting", "default")
        first = await source.read()
        second = await source.read()

        assert len(first.transforms) == 2
        assert second.transforms == []
        assert core_api.read_namespaced_config_map.call_count == 2

    @pytest.mark.asyncio
    async def test_custom_key(self):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.return_value = _config_map(
            {"rules": TRANSFORMS_YAML}
        )

        source = ConfigMapRuleSource(core_api, "muting", "default", key="rules")
        rules = await source.read()
        assert len(rules.transforms) == 2

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.return_value = _config_map({"other": "x"})

        source = ConfigMapRuleSource(core_api, "muting", "default")
        with pytest.raises(TransformError, match="has no key 'transforms.yaml'"):
            await source.read()

    @pytest.mark.asyncio
    async def test_empty_data_raises(self):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.return_value = _config_map(None)

        source = ConfigMapRuleSource(core_api, "muting", "default")
        with pytest.raises(TransformError):
            await source.read()

    @pytest.mark.asyncio
    async def test_not_found_raises(self):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.side_effect = ApiException(
            status=404, reason="Not Found"
        )

        source = ConfigMapRuleSource(core_api, "muting", "default")
        with pytest.raises(TransformError, match="not found"):
            await source.read()

    @pytest.mark.asyncio
    async def test_api_error_raises(self):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        source = ConfigMapRuleSource(core_api, "muting", "default")
        with pytest.raises(TransformError, match="Forbidden"):
            await source.read()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            MaxRetryError(
                None,
                "/api/v1/namespaces/default/configmaps/muting",
                reason=ConnectionRefusedError(111, "Connection refused"),
            ),
            ConnectionResetError(104, "Connection reset by peer"),
        ],
    )
    async def test_unreachable_api_server_raises(self, error):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.side_effect = error

        source = ConfigMapRuleSource(core_api, "muting", "default")
        with pytest.raises(TransformError, match="Unable to reach the API server") as exc_info:
            await source.read()
        assert exc_info.value.cause is error

    def test_describe(self):
        source = ConfigMapRuleSource(MagicMock(), "muting", "default")
        assert source.describe() == "ConfigMap default/muting key transforms.yaml"
