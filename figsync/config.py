"""Configuration loading for figsync (.figsync.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".figsync.yml"
CONCURRENCY_MODES = ("serialize", "parallel")


@dataclass
class DesignConfig:
    """Design-tool API settings."""

    file_id: Optional[str] = None
    token: Optional[str] = None
    api_url: str = "https://api.figma.com"
    timeout: float = 30.0
    max_retries: int = 4
    backoff: float = 1.0


@dataclass
class HostConfig:
    """Version-control host settings."""

    owner: Optional[str] = None
    repo: Optional[str] = None
    token: Optional[str] = None
    api_url: str = "https://api.github.com"
    base_branch: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    backoff: float = 1.0


@dataclass
class GenerateConfig:
    """Code generation settings."""

    target_prefix: str = "apps/web"
    policy: str = "react"


@dataclass
class PublishConfig:
    """Publish strategy for generated snapshots."""

    branch_prefix: str = "figsync"
    commit_message: str = "chore(design): sync generated files"
    labels: List[str] = field(default_factory=list)
    update_existing: bool = True
    concurrency: str = "serialize"
    blob_workers: int = 1


@dataclass
class StateConfig:
    """Where the last published snapshot is recorded."""

    path: Optional[Path] = None


@dataclass
class FigSyncConfig:
    """Represents the settings defined in .figsync.yml."""

    root: Path
    design: DesignConfig = field(default_factory=DesignConfig)
    host: HostConfig = field(default_factory=HostConfig)
    generate: GenerateConfig = field(default_factory=GenerateConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    state: StateConfig = field(default_factory=StateConfig)


def load_config(
    config_path: Path, *, environ: Mapping[str, str] | None = None
) -> FigSyncConfig:
    """Load configuration from disk, filling unset values from the environment."""
    env = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    design_data = _as_dict(data.get("design"))
    design = DesignConfig(
        file_id=_as_str(design_data.get("file_id")) or env.get("FIGMA_FILE_ID"),
        token=_as_str(design_data.get("token")) or env.get("FIGMA_TOKEN"),
    )
    design.api_url = (_as_str(design_data.get("api_url")) or design.api_url).rstrip("/")
    design.timeout = _as_float(design_data.get("timeout")) or design.timeout
    design.max_retries = _positive(_as_int(design_data.get("max_retries")), design.max_retries)
    backoff = _as_float(design_data.get("backoff"))
    design.backoff = backoff if backoff is not None else design.backoff

    host_data = _as_dict(data.get("host"))
    host = HostConfig(
        owner=_as_str(host_data.get("owner")) or env.get("GH_OWNER"),
        repo=_as_str(host_data.get("repo")) or env.get("GH_REPO"),
        token=_as_str(host_data.get("token")) or env.get("GH_TOKEN") or env.get("GITHUB_TOKEN"),
        base_branch=_as_str(host_data.get("base_branch")) or env.get("FIGSYNC_BASE_BRANCH"),
    )
    host.api_url = (_as_str(host_data.get("api_url")) or host.api_url).rstrip("/")
    host.timeout = _as_float(host_data.get("timeout")) or host.timeout
    host.max_retries = _positive(_as_int(host_data.get("max_retries")), host.max_retries)
    backoff = _as_float(host_data.get("backoff"))
    host.backoff = backoff if backoff is not None else host.backoff

    generate_data = _as_dict(data.get("generate"))
    generate = GenerateConfig()
    prefix = _as_str(generate_data.get("target_prefix")) or env.get("CODEGEN_TARGET")
    if prefix is not None:
        generate.target_prefix = prefix.strip().strip("/")
    generate.policy = _as_str(generate_data.get("policy")) or generate.policy

    publish_data = _as_dict(data.get("publish"))
    publish = PublishConfig()
    if publish_data:
        publish.branch_prefix = (
            _as_str(publish_data.get("branch_prefix")) or publish.branch_prefix
        ).strip().strip("/")
        publish.commit_message = _as_str(publish_data.get("commit_message")) or publish.commit_message
        publish.labels = _as_str_list(publish_data.get("labels"))
        update_existing = _as_bool(publish_data.get("update_existing"))
        if update_existing is not None:
            publish.update_existing = update_existing
        concurrency = _as_str(publish_data.get("concurrency"))
        if concurrency is not None:
            concurrency = concurrency.strip().lower()
            if concurrency not in CONCURRENCY_MODES:
                raise ConfigError(
                    f"publish.concurrency must be one of {', '.join(CONCURRENCY_MODES)}; got {concurrency!r}"
                )
            publish.concurrency = concurrency
        publish.blob_workers = _positive(_as_int(publish_data.get("blob_workers")), publish.blob_workers)

    state_data = _as_dict(data.get("state"))
    state = StateConfig()
    state_path = _as_str(state_data.get("path"))
    state.path = root / (state_path or ".figsync/state.json")

    return FigSyncConfig(
        root=root,
        design=design,
        host=host,
        generate=generate,
        publish=publish,
        state=state,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.suffix not in {".yml", ".yaml"}:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _positive(value: Optional[int], default: int) -> int:
    if value is None:
        return default
    return value if value > 0 else default


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []
