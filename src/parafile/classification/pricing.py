"""Token pricing used to estimate the cost of AI calls."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from .models import UsageRecord

# (input_price_per_1k, output_price_per_1k) in USD
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o": (0.0025, 0.0100),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4-turbo": (0.0100, 0.0300),
    "gpt-4.1": (0.0020, 0.0080),
    "gpt-4.1-mini": (0.0004, 0.0016),
    "gpt-3.5-turbo": (0.0005, 0.0015),
}

_DEFAULT_PRICING = (0.001, 0.002)
_LOCAL_PROVIDERS = {"local", "ollama", "ollama_chat", "lm_studio"}


def compute_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Return the estimated USD cost of a call.

    Args:
        model: Model identifier, optionally prefixed with ``provider/``.
        prompt_tokens: Tokens sent to the model.
        completion_tokens: Tokens generated by the model.

    Returns:
        float: Estimated cost; local providers are free.
    """
    provider, _, name = model.rpartition("/")
    if provider in _LOCAL_PROVIDERS:
        return 0.0
    price_in, price_out = MODEL_PRICING.get(name, _DEFAULT_PRICING)
    cost = (prompt_tokens / 1000.0 * price_in) + (completion_tokens / 1000.0 * price_out)
    return round(cost, 9)


def usage_from_lm_usage(
    operation: str, lm_usage: Optional[Mapping[str, Any]]
) -> Optional[UsageRecord]:
    """Build a :class:`UsageRecord` from DSPy's per-model usage mapping.

    Args:
        operation: Name of the gateway operation that made the call.
        lm_usage: Mapping of model name to usage counters as returned by
            ``Prediction.get_lm_usage()``.

    Returns:
        Optional[UsageRecord]: Aggregated usage, or ``None`` when nothing was reported.
    """
    if not lm_usage:
        return None

    models: list[str] = []
    prompt_tokens = completion_tokens = total_tokens = 0
    cost = 0.0
    for model, counters in lm_usage.items():
        if not isinstance(counters, Mapping):
            continue
        prompt = int(counters.get("prompt_tokens") or 0)
        completion = int(counters.get("completion_tokens") or 0)
        models.append(model)
        prompt_tokens += prompt
        completion_tokens += completion
        total_tokens += int(counters.get("total_tokens") or prompt + completion)
        cost += compute_cost(model, prompt, completion)

    if not models:
        return None
    return UsageRecord(
        operation=operation,
        model=", ".join(models),
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
        cost=round(cost, 9),
    )


__all__ = ["MODEL_PRICING", "compute_cost", "usage_from_lm_usage"]
