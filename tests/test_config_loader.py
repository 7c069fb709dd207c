"""Tests for loading connectors, pipelines and vaults from files."""

from __future__ import annotations

import json

import pytest
import yaml
from cryptography.fernet import Fernet

from etlcore.connectors.config_loader import ConfigLoader, ConfigValidationError
from etlcore.connectors.models import ApiKeyCredential, BasicCredential
from etlcore.security.credentials import SecretCipher

PIPELINES_YAML = """
connectors:
  - id: crm-contacts
    adapter_id: rest
    endpoint_id: contacts
    credential_id: crm
    config:
      base_url: ${CRM_BASE_URL}
    pagination:
      itemsPerPage: 50
  - id: warehouse
    adapter_id: memory
    endpoint_id: records
    credential_id: local

pipelines:
  - id: nightly-contacts
    source: crm-contacts
    target: warehouse
    error_handling:
      max_retries: 3
      retry_interval: 2000
      fail_on_error: false
    rate_limiting:
      requests_per_second: 5
"""


@pytest.fixture
def loader(tmp_path) -> ConfigLoader:
    return ConfigLoader(tmp_path, cipher=SecretCipher(Fernet.generate_key().decode()))


class TestLoadPipelines:
    """Tests for pipeline files."""

    def test_connector_references_and_env_expansion(self, loader, tmp_path, monkeypatch) -> None:
        """String sources/targets resolve to connectors; ${VAR} expands."""
        monkeypatch.setenv("CRM_BASE_URL", "https://crm.example.com")
        path = tmp_path / "pipelines.yaml"
        path.write_text(PIPELINES_YAML)

        (pipeline,) = loader.load_pipelines(path)

        assert pipeline.source.id == "crm-contacts"
        assert pipeline.source.config["base_url"] == "https://crm.example.com"
        assert pipeline.source.requested_items_per_page == 50
        assert pipeline.target.adapter_id == "memory"
        assert pipeline.error_handling.max_retries == 3
        assert pipeline.error_handling.fail_on_error is False
        assert pipeline.rate_limiting.requests_per_second == 5

    def test_unset_env_reference_is_kept(self, loader, tmp_path, monkeypatch) -> None:
        """References to unset variables stay literal."""
        monkeypatch.delenv("CRM_BASE_URL", raising=False)
        path = tmp_path / "pipelines.yaml"
        path.write_text(PIPELINES_YAML)

        (pipeline,) = loader.load_pipelines(path)
        assert pipeline.source.config["base_url"] == "${CRM_BASE_URL}"

    def test_unknown_connector_reference(self, loader, tmp_path) -> None:
        """A reference to a missing connector id is reported."""
        path = tmp_path / "pipelines.json"
        path.write_text(json.dumps({"pipelines": [{"id": "p", "source": "ghost"}]}))

        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load_pipelines(path)
        assert exc_info.value.errors[0]["error"] == "Unknown connector id: ghost"
        assert exc_info.value.errors[0]["field"] == "source"

    def test_invalid_policy_is_reported(self, loader, tmp_path) -> None:
        """Field errors carry the file, index and location."""
        path = tmp_path / "pipelines.yaml"
        path.write_text(
            yaml.dump({"pipelines": [{"id": "p", "data": [], "error_handling": {"max_retries": -1}}]})
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load_pipelines(path)
        error = exc_info.value.errors[0]
        assert error["index"] == 0
        assert error["field"] == "error_handling.max_retries"


class TestLoadConnectors:
    """Tests for connector files and directories."""

    def test_single_connector_file(self, loader, tmp_path) -> None:
        """A file holding one connector mapping yields one connector."""
        path = tmp_path / "one.yml"
        path.write_text(
            yaml.dump({"id": "c", "adapter_id": "memory", "endpoint_id": "records", "credential_id": "x"})
        )
        (connector,) = loader.load_connectors(path)
        assert connector.id == "c"

    def test_unsupported_extension(self, loader, tmp_path) -> None:
        """Only YAML and JSON files are read."""
        path = tmp_path / "c.toml"
        path.write_text("id = 'c'")
        with pytest.raises(ValueError, match="Unsupported config format"):
            loader.load_connectors(path)

    def test_load_directory_collects_errors(self, loader, tmp_path) -> None:
        """Every broken file is reported, not only the first."""
        (tmp_path / "a.json").write_text(json.dumps([{"id": "a"}]))
        (tmp_path / "b.yaml").write_text(yaml.dump([{"id": "b"}]))

        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load_directory()
        files = {error["file"] for error in exc_info.value.errors}
        assert files == {str(tmp_path / "a.json"), str(tmp_path / "b.yaml")}

    def test_missing_directory_is_empty(self, tmp_path) -> None:
        """A directory that does not exist yields nothing."""
        assert ConfigLoader(tmp_path / "missing").load_directory() == []

    def test_export_round_trip(self, loader, tmp_path) -> None:
        """Exported connectors load back unchanged."""
        path = tmp_path / "single.yaml"
        path.write_text(
            yaml.dump(
                {
                    "id": "c",
                    "adapter_id": "memory",
                    "endpoint_id": "records",
                    "credential_id": "x",
                    "pagination": {"itemsPerPage": 5},
                }
            )
        )
        connectors = loader.load_connectors(path)

        out = tmp_path / "out" / "export.json"
        loader.export_config(connectors, out, format="json")

        assert loader.load_connectors(out) == connectors


class TestLoadVault:
    """Tests for credential files."""

    def test_mapping_with_encrypted_secret(self, loader, tmp_path) -> None:
        """enc: values are decrypted and entries keyed by id."""
        path = tmp_path / "vault.yaml"
        path.write_text(
            yaml.dump(
                {
                    "credentials": {
                        "crm": {"type": "api_key", "credentials": {"api_key": loader.cipher.encrypt("k-1")}},
                        "db": {
                            "type": "basic",
                            "credentials": {"username": "etl", "password": loader.cipher.encrypt("pw")},
                        },
                    }
                }
            )
        )

        vault = loader.load_vault(path)

        assert isinstance(vault["crm"], ApiKeyCredential)
        assert vault["crm"].credentials.api_key == "k-1"
        assert isinstance(vault["db"], BasicCredential)
        assert vault["db"].credentials.password == "pw"

    def test_list_form_and_errors(self, loader, tmp_path) -> None:
        """List entries carry their id; bad entries are collected."""
        path = tmp_path / "vault.json"
        path.write_text(
            json.dumps(
                {
                    "credentials": [
                        {"id": "ok", "type": "api_key", "credentials": {"api_key": "k"}},
                        {"id": "bad", "type": "basic", "credentials": {"username": "u"}},
                        {"id": "locked", "type": "api_key", "credentials": {"api_key": "enc:zzz"}},
                    ]
                }
            )
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load_vault(path)

        indexes = [error["index"] for error in exc_info.value.errors]
        assert 1 in indexes and 2 in indexes
        assert 0 not in indexes
