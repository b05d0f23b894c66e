"""
Static model registry.

Maps the short model aliases used in strategies and on the command line
("opus", "gpt-5.3-codex") to the full ids each backend CLI expects. Each
harness's models() method is the runtime counterpart of this table.
"""

from __future__ import annotations

from dataclasses import dataclass

from hyperharness.types import HarnessId


@dataclass(frozen=True)
class ModelEntry:
    id: str
    full_id: str
    label: str
    display_class: str


@dataclass(frozen=True)
class HarnessModelConfig:
    models: tuple[ModelEntry, ...]
    default_model: str


@dataclass(frozen=True)
class HarnessMetaEntry:
    name: str
    vendor: str


HARNESS_META: dict[HarnessId, HarnessMetaEntry] = {
    "claude-code": HarnessMetaEntry(name="Claude Code", vendor="Anthropic"),
    "codex": HarnessMetaEntry(name="Codex", vendor="OpenAI"),
}

MODEL_REGISTRY: dict[HarnessId, HarnessModelConfig] = {
    "claude-code": HarnessModelConfig(
        models=(
            ModelEntry("opus", "claude-opus-4-6", "Opus 4.6", "Opus"),
            ModelEntry("sonnet", "claude-sonnet-4-5-20250929", "Sonnet 4.5", "Sonnet"),
            ModelEntry("haiku", "claude-haiku-4-5-20251001", "Haiku 4.5", "Haiku"),
        ),
        default_model="opus",
    ),
    "codex": HarnessModelConfig(
        models=(
            ModelEntry("gpt-5.3-codex", "gpt-5.3-codex", "GPT-5.3 Codex", "Codex"),
            ModelEntry("gpt-5.3-codex-spark", "gpt-5.3-codex-spark", "GPT-5.3 Codex Spark", "Codex"),
        ),
        default_model="gpt-5.3-codex",
    ),
}

DEFAULT_HARNESS_ID: HarnessId = "claude-code"
DEFAULT_MODEL = "opus"


def _find(alias: str, harness_id: HarnessId) -> ModelEntry | None:
    config = MODEL_REGISTRY.get(harness_id)
    if config is None:
        return None
    for entry in config.models:
        if entry.id == alias:
            return entry
    return None


def get_model_full_id(alias: str, harness_id: HarnessId | None = None) -> str:
    """Resolve an alias to the backend's full model id.

    Without a harness id every harness is searched. Unknown aliases are
    assumed to already be full ids and returned unchanged.
    """
    if harness_id:
        entry = _find(alias, harness_id)
        if entry:
            return entry.full_id

    for other_id in MODEL_REGISTRY:
        entry = _find(alias, other_id)
        if entry:
            return entry.full_id

    return alias


def get_models_for_harness(harness_id: HarnessId) -> list[ModelEntry]:
    config = MODEL_REGISTRY.get(harness_id)
    return list(config.models) if config else []


def get_default_model_for_harness(harness_id: HarnessId) -> str:
    config = MODEL_REGISTRY.get(harness_id)
    return config.default_model if config else DEFAULT_MODEL


def resolve_model_for_harness(alias: str, harness_id: HarnessId) -> str:
    """Return ``alias`` if the harness knows it, else the harness default."""
    config = MODEL_REGISTRY.get(harness_id)
    if config is None:
        return alias
    entry = _find(alias, harness_id)
    return entry.id if entry else config.default_model


def normalize_model_class(model_id: str) -> str:
    """Coarse family name ("Opus", "Codex", ...) for an alias or full id."""
    for config in MODEL_REGISTRY.values():
        for entry in config.models:
            if model_id in (entry.id, entry.full_id):
                return entry.display_class

    lower = model_id.lower()
    for family in ("opus", "sonnet", "haiku", "codex"):
        if family in lower:
            return family.capitalize()
    return "Other"
