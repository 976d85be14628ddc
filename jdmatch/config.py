"""Layered configuration for jdmatch.

Precedence, lowest to highest:
  built-in defaults -> ~/.jdmatch/config.yaml -> ./jdmatch.yaml
  -> explicit --config file -> JDM_<SECTION>__<KEY> environment variables

The merged mapping is checked against ``CONFIG_SCHEMA`` (JSON Schema) and
then parsed into ``MatcherConfig`` (pydantic) for types and ranges.
"""
from __future__ import annotations
import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate as js_validate
from pydantic import BaseModel, Field, ValidationError as PydValidationError, field_validator

ENV_PREFIX = "JDM_"
USER_CONFIG_PATH = Path.home() / ".jdmatch" / "config.yaml"
PROJECT_CONFIG_PATH = Path("jdmatch.yaml")


class ConfigError(Exception):
    """Configuration could not be loaded or is invalid"""


class LLMCfg(BaseModel):
    provider: str = "mock"
    model: str = "gpt-4o-mini"
    max_tokens: int = Field(4000, ge=1)
    timeout_s: int = Field(60, ge=1)
    region: Optional[str] = None

    @field_validator("provider")
    @classmethod
    def _provider(cls, v):
        allowed = {"mock", "openai", "bedrock"}
        if v.lower() not in allowed:
            raise ValueError(f"Invalid LLM provider: {v}")
        return v.lower()


class RetryCfg(BaseModel):
    max_retries: int = Field(5, ge=0)
    initial_delay_ms: int = Field(1000, ge=0)


class MatchingCfg(BaseModel):
    top_n: int = Field(3, ge=1)
    threshold: int = Field(60, ge=0, le=100)
    max_context_chars: int = Field(12000, ge=1)


class IngestionCfg(BaseModel):
    source_prefix: str = "resume_input/"
    batch_size: int = Field(100, ge=1, le=1000)
    max_docs: int = Field(200, ge=1)
    inter_document_delay_s: float = Field(2.0, ge=0)
    chunk_size: int = Field(1000, ge=1)
    chunk_overlap: int = Field(200, ge=0)
    extensions: list[str] = Field(default_factory=lambda: [".pdf"])


class StorageCfg(BaseModel):
    bucket: Optional[str] = None
    local_root: Optional[str] = None
    region: Optional[str] = None
    output_path: str = "resume_tags.xlsx"


class EmbeddingCfg(BaseModel):
    provider: str = "mock"
    model: Optional[str] = None
    index_dir: str = "vector_indexes"
    enabled: bool = True


class LoggingCfg(BaseModel):
    level: str = Field("INFO")

    @field_validator("level")
    @classmethod
    def _level(cls, v):
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class MatcherConfig(BaseModel):
    llm: LLMCfg = LLMCfg()
    retry: RetryCfg = RetryCfg()
    matching: MatchingCfg = MatchingCfg()
    ingestion: IngestionCfg = IngestionCfg()
    storage: StorageCfg = StorageCfg()
    embedding: EmbeddingCfg = EmbeddingCfg()
    logging: LoggingCfg = LoggingCfg()


def _section(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "additionalProperties": False}


_SCALAR = {"type": ["string", "number", "integer", "boolean", "null"]}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "llm": _section({k: _SCALAR for k in ("provider", "model", "max_tokens", "timeout_s", "region")}),
        "retry": _section({k: _SCALAR for k in ("max_retries", "initial_delay_ms")}),
        "matching": _section({k: _SCALAR for k in ("top_n", "threshold", "max_context_chars")}),
        "ingestion": _section({
            **{k: _SCALAR for k in ("source_prefix", "batch_size", "max_docs", "inter_document_delay_s",
                                    "chunk_size", "chunk_overlap")},
            "extensions": {"type": ["array", "string"], "items": {"type": "string"}},
        }),
        "storage": _section({k: _SCALAR for k in ("bucket", "local_root", "region", "output_path")}),
        "embedding": _section({k: _SCALAR for k in ("provider", "model", "index_dir", "enabled")}),
        "logging": _section({"level": {"type": "string"}}),
    },
}


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def _merge(layers) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for layer in layers:
        for k, v in layer.items():
            if isinstance(v, dict) and isinstance(merged.get(k), dict):
                merged[k].update(v)
            else:
                merged[k] = copy.deepcopy(v)
    return merged


def _apply_env(merged: Dict[str, Any], environ: Mapping[str, str]) -> None:
    # JDM_MATCHING__TOP_N=5 -> config['matching']['top_n'] = '5'
    for k, v in environ.items():
        if not k.startswith(ENV_PREFIX):
            continue
        path = k[len(ENV_PREFIX):].lower().split("__")
        if len(path) < 2 or not all(path):
            continue
        cur = merged
        for seg in path[:-1]:
            cur = cur.setdefault(seg, {})
        if path[-1] == "extensions":
            cur[path[-1]] = [ext.strip() for ext in v.split(",") if ext.strip()]
        else:
            cur[path[-1]] = v


def load_config(explicit: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None,
                use_dotenv: bool = True) -> MatcherConfig:
    """Load, merge and validate configuration.

    Raises:
        ConfigError: if a file cannot be read or the merged result is invalid.
    """
    if use_dotenv:
        load_dotenv()
    if explicit is not None and not Path(explicit).exists():
        raise ConfigError(f"Config file not found: {explicit}")

    layers = [
        MatcherConfig().model_dump(),
        _load_yaml(USER_CONFIG_PATH),
        _load_yaml(PROJECT_CONFIG_PATH),
    ]
    if explicit is not None:
        layers.append(_load_yaml(Path(explicit)))
    merged = _merge(layers)
    _apply_env(merged, os.environ if environ is None else environ)
    return validate_config(merged)


def validate_config(conf: Dict[str, Any]) -> MatcherConfig:
    """Check shape with JSON Schema, then types and ranges with pydantic."""
    try:
        js_validate(instance=conf, schema=CONFIG_SCHEMA)
    except SchemaValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Config invalid at {location}: {e.message}") from e
    try:
        config = MatcherConfig(**conf)
    except PydValidationError as e:
        raise ConfigError(f"Pydantic config validation failed: {e.errors()}") from e
    if config.ingestion.chunk_overlap >= config.ingestion.chunk_size:
        raise ConfigError("ingestion.chunk_overlap must be smaller than ingestion.chunk_size")
    return config
