"""Per-model token pricing."""

from parley.llm.client import Usage

# USD per million tokens: (input, output), matched by substring of the model id
MODEL_COSTS: dict[str, tuple[float, float]] = {
    "sonnet-4": (3.0, 15.0),
    "opus-4": (15.0, 75.0),
    "haiku-3": (0.25, 1.25),
}
DEFAULT_COST = (3.0, 15.0)


def model_costs(model: str) -> tuple[float, float]:
    for name, costs in MODEL_COSTS.items():
        if name in model:
            return costs
    return DEFAULT_COST


def compute_cost(model: str, usage: Usage) -> float:
    """Cost in USD of a response.

    Args:
        model: Model id
        usage: Token usage

    Returns:
        Cost in USD
    """
    input_cost, output_cost = model_costs(model)
    return (usage.input * input_cost + usage.output * output_cost) / 1_000_000
