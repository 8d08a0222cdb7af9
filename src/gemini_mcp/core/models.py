"""Gemini model catalog: families, versions and capability lookups.

The catalog is static reference data. Requests read it to map family ids to
concrete versions, to check caching and thinking support, and to size the
output token budget from the context window.
"""

from __future__ import annotations

from dataclasses import dataclass

from gemini_mcp.exceptions import UnsupportedModelError


@dataclass(frozen=True, slots=True)
class ModelVersion:
    """A concrete, versioned model id within a family."""

    id: str
    name: str
    supports_caching: bool = False
    is_preferred: bool = False


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    """A model family and its capabilities."""

    id: str
    name: str
    description: str
    supports_thinking: bool
    context_window: int
    versions: tuple[ModelVersion, ...]
    preferred_for_thinking: bool = False
    preferred_for_caching: bool = False
    preferred_for_search: bool = False

    @property
    def preferred_version(self) -> ModelVersion | None:
        """The preferred version, else the first listed, else None."""
        for version in self.versions:
            if version.is_preferred:
                return version
        return self.versions[0] if self.versions else None


FALLBACK_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="gemini-2.5-pro",
        name="Gemini 2.5 Pro",
        description=(
            "Pro model with advanced reasoning capabilities and thinking mode support"
        ),
        supports_thinking=True,
        context_window=1_048_576,
        preferred_for_thinking=True,
        preferred_for_caching=True,
        versions=(
            ModelVersion(
                id="gemini-2.5-pro-preview-06-05",
                name="Gemini 2.5 Pro Preview 06 05",
                supports_caching=True,
                is_preferred=True,
            ),
            ModelVersion(
                id="gemini-2.5-pro-exp-03-25",
                name="Gemini 2.5 Pro Exp 03 25",
                supports_caching=True,
            ),
        ),
    ),
    ModelDescriptor(
        id="gemini-2.5-flash",
        name="Gemini 2.5 Flash",
        description=(
            "Flash model optimized for efficiency and speed with thinking mode support"
        ),
        supports_thinking=True,
        context_window=32_768,
        preferred_for_thinking=True,
        preferred_for_caching=True,
        versions=(
            ModelVersion(
                id="gemini-2.5-flash-preview-05-20",
                name="Gemini 2.5 Flash Preview 05 20",
                supports_caching=True,
                is_preferred=True,
            ),
            ModelVersion(
                id="gemini-2.5-flash-preview-04-17",
                name="Gemini 2.5 Flash Preview 04 17",
                supports_caching=True,
            ),
        ),
    ),
    ModelDescriptor(
        id="gemini-2.5-flash-lite",
        name="Gemini 2.5 Flash Lite",
        description=(
            "Flash lite model optimized for low-cost, low-latency with optional "
            "thinking mode"
        ),
        supports_thinking=True,
        context_window=32_768,
        preferred_for_thinking=True,
        preferred_for_search=True,
        versions=(
            ModelVersion(
                id="gemini-2.5-flash-lite-preview-06-17",
                name="Gemini 2.5 Flash Lite Preview 06 17",
                supports_caching=False,  # no implicit caching for Lite yet
                is_preferred=True,
            ),
        ),
    ),
)


class ModelCatalog:
    """Read-only lookups over a set of model families."""

    def __init__(self, models: tuple[ModelDescriptor, ...] = FALLBACK_MODELS) -> None:
        """Index the given families by family id and version id."""
        self._models = models
        self._by_id: dict[str, ModelDescriptor] = {}
        self._versions: dict[str, ModelVersion] = {}
        for family in models:
            self._by_id[family.id] = family
            for version in family.versions:
                self._by_id[version.id] = family
                self._versions[version.id] = version

    @property
    def models(self) -> tuple[ModelDescriptor, ...]:
        """All families in catalog order."""
        return self._models

    def get_model(self, model_id: str) -> ModelDescriptor | None:
        """Return the family owning ``model_id`` (family or version id)."""
        return self._by_id.get(model_id)

    def get_version(self, model_id: str) -> ModelVersion | None:
        """Return the version entry for a versioned id, else None."""
        return self._versions.get(model_id)

    def resolve(self, model_id: str) -> str:
        """Map a family id to its preferred version id.

        Version ids and unknown ids are returned unchanged.
        """
        if model_id in self._versions:
            return model_id
        family = self._by_id.get(model_id)
        if family is None:
            return model_id
        preferred = family.preferred_version
        return preferred.id if preferred is not None else model_id

    def validate(self, model_id: str) -> None:
        """Accept known ids and anything that looks like a preview build.

        Raises:
            UnsupportedModelError: For other ids, listing the known ones.
        """
        if model_id in self._by_id:
            return
        if "preview" in model_id or "exp" in model_id or model_id.endswith("-dev"):
            return
        known = ", ".join(self.known_ids())
        raise UnsupportedModelError(
            f"invalid model ID: {model_id}. Available models: {known}"
        )

    def known_ids(self) -> list[str]:
        """Family ids followed by their version ids, in catalog order."""
        ids: list[str] = []
        for family in self._models:
            ids.append(family.id)
            ids.extend(v.id for v in family.versions)
        return ids

    def supports_caching(self, model_id: str) -> bool:
        """Caching support is a per-version flag; family ids resolve first."""
        version = self._versions.get(self.resolve(model_id))
        return version is not None and version.supports_caching

    def supports_thinking(self, model_id: str) -> bool:
        """Thinking support is a per-family flag."""
        family = self._by_id.get(model_id)
        return family is not None and family.supports_thinking

    def context_window(self, model_id: str) -> int | None:
        """Context window of the owning family, if known."""
        family = self._by_id.get(model_id)
        return family.context_window if family is not None else None

    def render_markdown(self) -> str:
        """Human-readable catalog returned by the ``models`` tool."""
        lines = ["# Available Gemini 2.5 Models", ""]
        for family in self._models:
            lines.extend(
                [
                    f"## {family.name}",
                    f"- Family ID: `{family.id}`",
                    f"- Description: {family.description}",
                    f"- Supports Thinking: {_yes_no(family.supports_thinking)}",
                    f"- Context Window Size: {family.context_window:,} tokens",
                    "- Versions:",
                ]
            )
            for version in family.versions:
                marker = " (preferred)" if version.is_preferred else ""
                lines.append(
                    f"  - `{version.id}`{marker}: caching "
                    f"{'supported' if version.supports_caching else 'not supported'}"
                )
            lines.append("")

        lines.extend(
            [
                "## Usage",
                "Pass a family ID (resolved to its preferred version) or a version ID "
                "in the `model` parameter of `ask` or `search`.",
                "",
                "## Caching",
                "Set `use_cache` to reuse uploaded file context across requests on "
                "models whose version supports caching. `cache_ttl` controls the "
                "lifetime (e.g. `10m`, `1h`). Caching is skipped when thinking is "
                "enabled.",
                "",
                "## Thinking Mode",
                "* `enable_thinking`: enables or disables thinking mode (boolean)",
                "* `thinking_budget_level`: predefined budgets "
                '("none", "low", "medium", "high")',
                "  - none: 0 tokens (disabled)",
                "  - low: 4096 tokens",
                "  - medium: 16384 tokens",
                "  - high: 24576 tokens (maximum)",
                "* `thinking_budget`: a specific token count (0-24576)",
            ]
        )
        return "\n".join(lines) + "\n"


def _yes_no(flag: bool) -> str:  # noqa: FBT001
    return "Yes" if flag else "No"
