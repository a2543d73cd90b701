from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from planner.domain import BudgetStatus, category_from_json
from planner.errors import MalformedResponse

Number = Union[int, float, str, Decimal]

WARNING_PERCENTAGE = 80


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))


def derive_status(budget_amount: Number, spent_amount: Number) -> dict:
    """Spend against a budget threshold.

    remaining may go negative; percentage is rounded half-up and is 0
    for a zero budget. Negative budgets are not checked.
    """
    budget = _to_decimal(budget_amount)
    spent = _to_decimal(spent_amount)

    if budget > 0:
        ratio = spent / budget * 100
        percentage = int(ratio.to_integral_value(rounding=ROUND_HALF_UP))
    else:
        percentage = 0

    return {
        "remaining": budget - spent,
        "percentage": percentage,
        "is_over_budget": spent > budget,
    }


def progress_width(percentage: int) -> int:
    return max(0, min(percentage, 100))


def status_level(status: BudgetStatus) -> str:
    if status.is_over_budget:
        return "over"
    if status.percentage > WARNING_PERCENTAGE:
        return "warning"
    return "ok"


def budget_status_from_json(data: dict) -> BudgetStatus:
    try:
        budget = _to_decimal(data["budgetAmount"])
        spent = _to_decimal(data["spentAmount"])
        derived = derive_status(budget, spent)
    except (KeyError, TypeError, ValueError, ArithmeticError) as e:
        raise MalformedResponse(f"Invalid budget status record: {e}") from e

    category = data.get("category")
    return BudgetStatus(
        id=str(data.get("id", "")),
        category=category_from_json(category) if category else None,
        budget_amount=budget,
        spent_amount=spent,
        remaining=derived["remaining"],
        percentage=derived["percentage"],
        is_over_budget=derived["is_over_budget"],
    )
