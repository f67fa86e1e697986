"""Configuration model and loaders for distflite.

Responsibilities:
- Define runtime configuration as a typed dataclass.
- Resolve backend connection settings with deterministic source precedence.
- Load command defaults from YAML files.

Key types:
- `DistfliteConfig`: normalized settings for one distributed run.
- `BackendRuntimeConfig`: resolved backend connection settings.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `DistfliteConfig`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models.datatypes import Timeout
from .parsing import normalize_optional_string, parse_permissive_boolean, parse_port


DEFAULT_SUBTASKS = 6
DEFAULT_BID = 1.0
DEFAULT_TASK_TIMEOUT = Timeout(hours=0, minutes=10, seconds=0)
DEFAULT_SUBTASK_TIMEOUT = Timeout(hours=0, minutes=1, seconds=0)
DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 61000
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


class _TimeLiteralSafeLoader(yaml.SafeLoader):
    """Safe YAML loader that keeps `HH:MM:SS`-style literals as strings.

    YAML 1.1 reads unquoted `10:00:00` and `10:00` as base-60 integers.
    """


_TimeLiteralSafeLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:int"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_TimeLiteralSafeLoader.add_implicit_resolver(
    "tag:yaml.org,2002:int",
    re.compile(
        r"""^(?:[-+]?0b[0-1_]+
            |[-+]?0[0-7_]+
            |[-+]?(?:0|[1-9][0-9_]*)
            |[-+]?0x[0-9a-fA-F_]+)$""",
        re.X,
    ),
    list("-+0123456789"),
)


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BackendRuntimeConfig:
    """Resolved backend connection settings for one run."""

    address: str
    port: int
    workload_dir: Path | None

    @property
    def base_url(self) -> str:
        return f"http://{self.address}:{self.port}"


@dataclass(slots=True)
class DistfliteConfig:
    """Runtime configuration for one distributed run.

    Attributes:
        input_path: Path to the input text file.
        output_path: Path of the merged WAV output.
        subtasks: Number of partitions submitted as backend subtasks.
        bid: Bid value passed to the backend.
        budget: Optional budget cap passed to the backend.
        task_timeout: Backend task-level timeout.
        subtask_timeout: Backend subtask-level timeout.
        address: Backend address.
        port: Backend port.
        workspace: Optional user-specified workspace, kept after the run.
        workload_dir: Directory holding the workload stub and binary.
        poll_interval_seconds: Delay between status polls.
        request_timeout_seconds: Per-request HTTP timeout.
        verbose: Whether detailed logging is enabled.
        runtime_sources: Optional runtime source overrides injected by CLI.
    """

    input_path: Path
    output_path: Path
    subtasks: int = DEFAULT_SUBTASKS
    bid: float = DEFAULT_BID
    budget: float | None = None
    task_timeout: Timeout = DEFAULT_TASK_TIMEOUT
    subtask_timeout: Timeout = DEFAULT_SUBTASK_TIMEOUT
    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    workspace: Path | None = None
    workload_dir: Path | None = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    verbose: bool = False
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)

    def validate(self) -> None:
        """Validate configuration values before pipeline execution."""

        if self.subtasks < 1:
            raise ValueError("`subtasks` must be a positive integer.")
        if self.bid <= 0:
            raise ValueError("`bid` must be a positive number.")
        if self.budget is not None and self.budget <= 0:
            raise ValueError("`budget` must be a positive number when set.")
        if not self.address.strip():
            raise ValueError("`address` must be a non-empty string.")
        parse_port(self.port, "port")
        if self.poll_interval_seconds < 0:
            raise ValueError("`poll_interval_seconds` must not be negative.")
        if self.request_timeout_seconds <= 0:
            raise ValueError("`request_timeout_seconds` must be a positive number.")

    def resolved_backend_runtime(
        self, sources: RuntimeConfigSources | None = None
    ) -> BackendRuntimeConfig:
        """Resolve backend settings with precedence `cli` > `env` > config field."""

        resolved_sources = sources if sources is not None else RuntimeConfigSources()
        address = self._resolve_value(
            "address", "DISTFLITE_ADDRESS", self.address, resolved_sources
        )
        port = parse_port(
            self._resolve_value("port", "DISTFLITE_PORT", str(self.port), resolved_sources),
            "port",
        )
        workload_dir = self._resolve_value(
            "workload_dir",
            "DISTFLITE_WORKLOAD_DIR",
            str(self.workload_dir) if self.workload_dir is not None else None,
            resolved_sources,
        )
        if address is None:
            raise ValueError("`address` could not be resolved from CLI, env, or defaults.")
        return BackendRuntimeConfig(
            address=address,
            port=port,
            workload_dir=Path(workload_dir) if workload_dir is not None else None,
        )

    @staticmethod
    def _resolve_value(
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str | None:
        """Resolve one runtime value from sources in precedence order."""

        for mapping, lookup_key in ((sources.cli, key), (sources.env, env_key)):
            if lookup_key in mapping:
                value = normalize_optional_string(mapping.get(lookup_key))
                if value is not None:
                    return value
        return normalize_optional_string(default_value)


class ConfigLoader:
    """Factory methods for creating `DistfliteConfig` from external sources."""

    _REQUIRED_YAML_KEYS = frozenset({"input", "output"})
    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "input",
            "output",
            "subtasks",
            "bid",
            "budget",
            "task_timeout",
            "subtask_timeout",
            "address",
            "port",
            "workspace",
            "workload_dir",
            "poll_interval_seconds",
            "request_timeout_seconds",
            "verbose",
        }
    )

    @staticmethod
    def from_yaml(path: Path) -> DistfliteConfig:
        """Create a validated config from a YAML file."""

        payload = yaml.load(
            path.read_text(encoding="utf-8"), Loader=_TimeLiteralSafeLoader
        )
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def _build_config_from_mapping(
        payload: Mapping[str, Any], source_label: str
    ) -> DistfliteConfig:
        """Build a validated config from a mapping payload."""

        ConfigLoader._validate_keys(payload, source_label)

        budget = ConfigLoader._optional_positive_float(payload, "budget", source_label, None)
        workspace = ConfigLoader._optional_string(payload, "workspace")
        workload_dir = ConfigLoader._optional_string(payload, "workload_dir")
        port = payload.get("port", DEFAULT_PORT)
        try:
            port = parse_port(port, "port")
        except ValueError as exc:
            raise ValueError(f"{source_label} field {exc}") from exc

        config = DistfliteConfig(
            input_path=ConfigLoader._required_path(payload, "input", source_label),
            output_path=ConfigLoader._required_path(payload, "output", source_label),
            subtasks=ConfigLoader._optional_positive_int(
                payload, "subtasks", source_label, DEFAULT_SUBTASKS
            ),
            bid=ConfigLoader._optional_positive_float(
                payload, "bid", source_label, DEFAULT_BID
            ),
            budget=budget,
            task_timeout=ConfigLoader._optional_timeout(
                payload, "task_timeout", source_label, DEFAULT_TASK_TIMEOUT
            ),
            subtask_timeout=ConfigLoader._optional_timeout(
                payload, "subtask_timeout", source_label, DEFAULT_SUBTASK_TIMEOUT
            ),
            address=ConfigLoader._optional_string(payload, "address") or DEFAULT_ADDRESS,
            port=port,
            workspace=Path(workspace) if workspace is not None else None,
            workload_dir=Path(workload_dir) if workload_dir is not None else None,
            poll_interval_seconds=ConfigLoader._optional_non_negative_float(
                payload,
                "poll_interval_seconds",
                source_label,
                DEFAULT_POLL_INTERVAL_SECONDS,
            ),
            request_timeout_seconds=ConfigLoader._optional_positive_float(
                payload,
                "request_timeout_seconds",
                source_label,
                DEFAULT_REQUEST_TIMEOUT_SECONDS,
            ),
            verbose=ConfigLoader._optional_boolean(payload, "verbose", source_label, False),
        )
        config.validate()
        return config

    @staticmethod
    def _validate_keys(payload: Mapping[str, Any], source_label: str) -> None:
        """Validate supported and required keys."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        missing = sorted(
            key for key in ConfigLoader._REQUIRED_YAML_KEYS if key not in payload
        )
        if missing:
            key_list = ", ".join(missing)
            raise ValueError(f"{source_label} is missing required key(s): {key_list}.")

    @staticmethod
    def _required_path(payload: Mapping[str, Any], key: str, source_label: str) -> Path:
        """Read a required non-empty path-like field from a payload."""

        value = ConfigLoader._optional_string(payload, key)
        if value is None:
            raise ValueError(f"{source_label} requires non-empty `{key}`.")
        return Path(value)

    @staticmethod
    def _optional_string(payload: Mapping[str, Any], key: str) -> str | None:
        """Read an optional string field and normalize blank values to `None`."""

        if key not in payload:
            return None
        return normalize_optional_string(payload[key])

    @staticmethod
    def _optional_positive_int(
        payload: Mapping[str, Any], key: str, source_label: str, default: int
    ) -> int:
        """Read and validate a positive integer payload field."""

        if key not in payload:
            return default

        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a positive integer.")
        try:
            parsed = int(str(raw_value).strip())
        except ValueError as exc:
            raise ValueError(
                f"{source_label} field `{key}` must be a positive integer."
            ) from exc
        if parsed <= 0:
            raise ValueError(f"{source_label} field `{key}` must be a positive integer.")
        return parsed

    @staticmethod
    def _optional_float(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> float | None:
        """Read an optional numeric field."""

        if key not in payload or payload[key] is None:
            return None
        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a number.")
        try:
            return float(str(raw_value).strip())
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}` must be a number.") from exc

    @staticmethod
    def _optional_positive_float(
        payload: Mapping[str, Any], key: str, source_label: str, default: float | None
    ) -> float | None:
        """Read and validate a positive numeric field."""

        parsed = ConfigLoader._optional_float(payload, key, source_label)
        if parsed is None:
            return default
        if parsed <= 0:
            raise ValueError(f"{source_label} field `{key}` must be a positive number.")
        return parsed

    @staticmethod
    def _optional_non_negative_float(
        payload: Mapping[str, Any], key: str, source_label: str, default: float
    ) -> float:
        """Read and validate a non-negative numeric field."""

        parsed = ConfigLoader._optional_float(payload, key, source_label)
        if parsed is None:
            return default
        if parsed < 0:
            raise ValueError(f"{source_label} field `{key}` must not be negative.")
        return parsed

    @staticmethod
    def _optional_timeout(
        payload: Mapping[str, Any], key: str, source_label: str, default: Timeout
    ) -> Timeout:
        """Read an optional `HH:MM:SS` timeout field."""

        value = normalize_optional_string(payload.get(key))
        if value is None:
            return default
        try:
            return Timeout.parse(value)
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}`: {exc}") from exc

    @staticmethod
    def _optional_boolean(
        payload: Mapping[str, Any], key: str, source_label: str, default: bool
    ) -> bool:
        """Read and validate a boolean field from a payload."""

        if key not in payload:
            return default

        parsed = parse_permissive_boolean(payload[key])
        if parsed is None:
            raise ValueError(
                f"{source_label} field `{key}` must be a boolean value "
                "(`true`/`false`, `1`/`0`, `yes`/`no`)."
            )
        return parsed
