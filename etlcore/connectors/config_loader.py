"""Configuration file loader for connectors, pipelines and vaults.

Supports loading definitions from YAML and JSON files, enabling
infrastructure-as-code patterns for pipeline management. String values
may reference environment variables as ``${NAME}``; vault secrets may be
Fernet-encrypted with the ``enc:`` prefix.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..security.credentials import SecretCipher, Vault
from .models import Connector, Pipeline, parse_credential

logger = logging.getLogger(__name__)

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ConfigLoader:
    """Loads and validates pipeline definitions from files."""

    def __init__(
        self,
        config_dir: str | Path | None = None,
        cipher: SecretCipher | None = None,
    ):
        """Initialize the config loader.

        Args:
            config_dir: Directory containing config files.
                        Defaults to ./config/pipelines/
            cipher: Decrypts ``enc:`` vault secrets (built from ETL_VAULT_KEY if None)
        """
        self.config_dir = Path(config_dir) if config_dir else Path("config/pipelines")
        self.cipher = cipher or SecretCipher()

    def load_file(self, file_path: str | Path) -> Any:
        """Read a YAML or JSON file with environment references expanded.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If the extension is not supported
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        suffix = path.suffix.lower()

        with open(path) as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")

        return _expand_env(data)

    def load_connectors(self, file_path: str | Path) -> list[Connector]:
        """Load connector definitions from a file.

        The file may hold a single connector, a list, or a ``connectors`` list.

        Raises:
            ConfigValidationError: If any connector is invalid
        """
        source = str(file_path)
        data = self.load_file(file_path)
        return self._parse_items(self._section(data, "connectors", source), Connector, source)

    def load_pipelines(self, file_path: str | Path) -> list[Pipeline]:
        """Load pipeline definitions from a file.

        ``source`` and ``target`` may be inline connectors or ids of
        entries in the file's ``connectors`` list.

        Raises:
            ConfigValidationError: If any pipeline or connector is invalid
        """
        source = str(file_path)
        data = self.load_file(file_path)

        connectors: dict[str, dict[str, Any]] = {}
        if isinstance(data, dict):
            for item in data.get("connectors", []) or []:
                if isinstance(item, dict) and item.get("id"):
                    connectors[item["id"]] = item

        items = self._section(data, "pipelines", source)
        errors: list[dict[str, Any]] = []
        resolved: list[Any] = []

        for idx, item in enumerate(items):
            if not isinstance(item, dict):
                resolved.append(item)
                continue
            item = dict(item)
            for role in ("source", "target"):
                ref = item.get(role)
                if isinstance(ref, str):
                    if ref not in connectors:
                        errors.append(
                            {
                                "file": source,
                                "index": idx,
                                "field": role,
                                "error": f"Unknown connector id: {ref}",
                            }
                        )
                    else:
                        item[role] = connectors[ref]
            resolved.append(item)

        if errors:
            raise ConfigValidationError(
                f"Validation failed for {len(errors)} pipeline reference(s) in {source}",
                errors=errors,
            )

        return self._parse_items(resolved, Pipeline, source)

    def load_vault(self, file_path: str | Path) -> Vault:
        """Load credentials from a file into a Vault.

        Entries live under ``credentials`` either as a mapping keyed by
        id or as a list of objects carrying ``id``.

        Raises:
            ConfigValidationError: If any credential is invalid
        """
        source = str(file_path)
        data = self.load_file(file_path)
        entries = data.get("credentials", data) if isinstance(data, dict) else data

        if isinstance(entries, dict):
            entries = [{**entry, "id": key} for key, entry in entries.items()]
        if not isinstance(entries, list):
            raise ConfigValidationError(
                f"Invalid vault format in {source}",
                errors=[{"file": source, "error": "Expected dict or list"}],
            )

        vault = Vault()
        errors: list[dict[str, Any]] = []

        for idx, entry in enumerate(entries):
            try:
                credential = parse_credential(self.cipher.decrypt_secrets(entry))
                vault[credential.id] = credential
            except ValidationError as e:
                errors.extend(_validation_errors(e, source, idx))
            except ValueError as e:
                errors.append({"file": source, "index": idx, "error": str(e)})

        if errors:
            raise ConfigValidationError(
                f"Validation failed for {len(errors)} credential field(s) in {source}",
                errors=errors,
            )

        logger.info(f"Loaded {len(vault)} credential(s) from {Path(source).name}")
        return vault

    def load_directory(self, directory: str | Path | None = None) -> list[Connector]:
        """Load all connector definitions from a directory.

        Args:
            directory: Directory to scan. Defaults to self.config_dir.

        Returns:
            Connectors from all files

        Raises:
            ConfigValidationError: If any validation fails
        """
        config_dir = Path(directory) if directory else self.config_dir

        if not config_dir.exists():
            logger.warning(f"Config directory does not exist: {config_dir}")
            return []

        connectors = []
        errors = []

        for pattern in ("*.yaml", "*.yml", "*.json"):
            for file_path in sorted(config_dir.glob(pattern)):
                try:
                    file_connectors = self.load_connectors(file_path)
                    connectors.extend(file_connectors)
                    logger.info(
                        f"Loaded {len(file_connectors)} connector(s) from {file_path.name}"
                    )
                except ConfigValidationError as e:
                    errors.extend(e.errors)
                except (OSError, ValueError, yaml.YAMLError) as e:
                    errors.append({"file": str(file_path), "error": str(e)})

        if errors:
            raise ConfigValidationError(
                f"Validation failed for {len(errors)} item(s)",
                errors=errors,
            )

        return connectors

    def _section(self, data: Any, key: str, source: str) -> list[Any]:
        if isinstance(data, dict):
            return data[key] if key in data else [data]
        if isinstance(data, list):
            return data
        raise ConfigValidationError(
            f"Invalid config format in {source}",
            errors=[{"file": source, "error": "Expected dict or list"}],
        )

    def _parse_items(self, items: list[Any], model: type, source: str) -> list[Any]:
        parsed = []
        errors: list[dict[str, Any]] = []

        for idx, item in enumerate(items):
            try:
                parsed.append(model.model_validate(item))
            except ValidationError as e:
                errors.extend(_validation_errors(e, source, idx))

        if errors:
            raise ConfigValidationError(
                f"Validation failed for {len(errors)} field(s) in {source}",
                errors=errors,
            )
        return parsed

    def export_config(
        self,
        connectors: list[Connector | dict[str, Any]],
        output_path: str | Path,
        format: str = "yaml",
    ) -> None:
        """Export connector definitions to a file.

        Args:
            connectors: Connectors or raw mappings
            output_path: Output file path
            format: Output format ("yaml" or "json")
        """
        path = Path(output_path)

        export_data = {
            "version": "1.0",
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "connectors": [
                c.model_dump(mode="json", by_alias=True, exclude_none=True)
                if isinstance(c, Connector)
                else c
                for c in connectors
            ],
        }

        path.parent.mkdir(parents=True, exist_ok=True)

        if format == "yaml":
            with open(path, "w") as f:
                yaml.dump(export_data, f, default_flow_style=False, sort_keys=False)
        elif format == "json":
            with open(path, "w") as f:
                json.dump(export_data, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Exported {len(connectors)} connector(s) to {path}")


def _expand_env(data: Any) -> Any:
    """Replace ``${NAME}`` references with environment values (kept if unset)."""
    if isinstance(data, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), m.group(0)), data)
    if isinstance(data, dict):
        return {key: _expand_env(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env(item) for item in data]
    return data


def _validation_errors(error: ValidationError, source: str, index: int) -> list[dict[str, Any]]:
    return [
        {
            "file": source,
            "index": index,
            "field": ".".join(str(part) for part in item["loc"]),
            "error": item["msg"],
        }
        for item in error.errors()
    ]
