"""Model resolution, thinking budgets and generation config assembly.

Pure functions shared by the ask and search handlers. The config they build is
a neutral mapping; the provider adapter turns it into SDK types.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gemini_mcp import constants

if TYPE_CHECKING:
    from datetime import datetime

    from gemini_mcp.config import ServerSettings
    from gemini_mcp.core.models import ModelCatalog
    from gemini_mcp.core.types import ThinkingOptions

logger = logging.getLogger(__name__)


def thinking_enabled(options: ThinkingOptions, settings: ServerSettings) -> bool:
    """The request flag wins over the configured default."""
    return settings.enable_thinking if options.enabled is None else options.enabled


def thinking_budget(
    options: ThinkingOptions,
    settings: ServerSettings,
    catalog: ModelCatalog,
    model: str,
) -> int | None:
    """Resolve the thinking budget for one request, or None for no thinking.

    Precedence is request level, then request budget, then the configured
    budget. Unknown levels fall back to ``low``. A budget is only returned
    when thinking is enabled, the family supports it and the value is > 0.
    """
    if not thinking_enabled(options, settings):
        return None
    if not catalog.supports_thinking(model):
        logger.debug("Model %s does not support thinking; skipping", model)
        return None

    if options.level is not None:
        level = options.level.strip().lower()
        if level not in constants.THINKING_BUDGET_LEVELS:
            logger.warning(
                "Invalid thinking_budget_level %r, using %r",
                options.level,
                constants.DEFAULT_THINKING_LEVEL,
            )
            level = constants.DEFAULT_THINKING_LEVEL
        budget = constants.THINKING_BUDGET_LEVELS[level]
    elif options.budget is not None and options.budget >= 0:
        budget = min(options.budget, constants.MAX_THINKING_BUDGET)
    else:
        budget = settings.thinking_budget or 0

    return budget if budget > 0 else None


def max_output_tokens(
    catalog: ModelCatalog, model: str, explicit: int | None, ratio: float
) -> int | None:
    """Explicit positive value, else ``ratio`` of the model's context window."""
    window = catalog.context_window(model)
    if explicit is not None and explicit > 0:
        if window is not None and explicit > window:
            logger.warning(
                "max_tokens %d exceeds the %d-token context window of %s",
                explicit,
                window,
                model,
            )
        return explicit
    if window is None:
        return None
    return int(window * ratio)


def build_config(
    *,
    system_prompt: str | None,
    temperature: float | None,
    max_tokens: int | None,
    budget: int | None,
    google_search: bool = False,
    time_range: tuple[datetime, datetime] | None = None,
) -> dict[str, object]:
    """Assemble the neutral generate config; unset keys are omitted."""
    config: dict[str, object] = {}
    if system_prompt:
        config["system_instruction"] = system_prompt
    if temperature is not None:
        config["temperature"] = temperature
    if max_tokens is not None:
        config["max_output_tokens"] = max_tokens
    if budget:
        config["thinking_budget"] = budget
    if google_search:
        config["google_search"] = True
        if time_range is not None:
            config["time_range"] = time_range
    return config


def cached_config(
    cache_name: str, *, max_tokens: int | None, budget: int | None
) -> dict[str, object]:
    """Config for a cache-bound call.

    System instruction and tools live in the cache and must not be repeated.
    """
    config: dict[str, object] = {"cached_content": cache_name}
    if max_tokens is not None:
        config["max_output_tokens"] = max_tokens
    if budget:
        config["thinking_budget"] = budget
    return config
