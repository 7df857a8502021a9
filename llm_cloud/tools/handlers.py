# llm_cloud/tools/handlers.py
"""
Handlers for the personal-finance tools offered to the domain specialist.

Each handler is a small, deterministic calculator. Letting the model call them
keeps arithmetic out of free-text generation, where models are unreliable.
The ``register_finance_tools`` function wires the handlers into a ``ToolManager``.
"""

import datetime
import logging
from typing import Any, Dict

from .core import Tool, ToolManager

logger = logging.getLogger(__name__)


def _budget_split_handler(args: Dict[str, Any]) -> Dict[str, Any]:
    """Split a monthly net income using the 50/30/20 rule (needs / wants / savings)."""
    income = float(args["monthly_income"])
    if income <= 0:
        return {"error": "monthly_income must be positive"}
    return {
        "needs": round(income * 0.50, 2),
        "wants": round(income * 0.30, 2),
        "savings": round(income * 0.20, 2),
    }


def _compound_interest_handler(args: Dict[str, Any]) -> Dict[str, Any]:
    """Project a balance with monthly compounding and an optional monthly contribution."""
    principal = float(args.get("principal", 0))
    annual_rate = float(args["annual_rate_percent"]) / 100
    years = int(args["years"])
    contribution = float(args.get("monthly_contribution", 0))
    if years < 0 or years > 100:
        return {"error": "years must be between 0 and 100"}

    monthly_rate = annual_rate / 12
    balance = principal
    for _ in range(years * 12):
        balance = balance * (1 + monthly_rate) + contribution
    invested = principal + contribution * years * 12
    return {
        "final_balance": round(balance, 2),
        "total_invested": round(invested, 2),
        "interest_earned": round(balance - invested, 2),
    }


def _emergency_fund_handler(args: Dict[str, Any]) -> Dict[str, Any]:
    """Target size of an emergency fund covering ``months`` of expenses (default 6)."""
    expenses = float(args["monthly_expenses"])
    months = int(args.get("months", 6))
    return {"target": round(expenses * months, 2), "months": months}


def _current_date_handler(args: Dict[str, Any]) -> str:
    """Today's date, so the model can reason about deadlines and durations."""
    return datetime.date.today().isoformat()


def register_finance_tools(tool_manager: ToolManager) -> None:
    """Registers all tools defined in this file with the provided ToolManager."""
    tool_manager.register(
        Tool(
            name="calculate_budget_split",
            handler=_budget_split_handler,
            description=(
                "Split a monthly net income into needs, wants and savings using the 50/30/20 rule. "
                "Use this when the user asks how to divide their income."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "monthly_income": {"type": "number", "description": "Monthly net income."},
                },
                "required": ["monthly_income"],
            },
        )
    )

    tool_manager.register(
        Tool(
            name="calculate_compound_interest",
            handler=_compound_interest_handler,
            description=(
                "Project how an investment or savings balance grows with monthly compounding. "
                "Use this for questions like 'how much will I have in 10 years if I save 200 a month'."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "principal": {"type": "number", "description": "Starting balance."},
                    "annual_rate_percent": {"type": "number", "description": "Yearly interest rate in percent."},
                    "years": {"type": "integer", "description": "Number of years."},
                    "monthly_contribution": {"type": "number", "description": "Amount added every month."},
                },
                "required": ["annual_rate_percent", "years"],
            },
        )
    )

    tool_manager.register(
        Tool(
            name="calculate_emergency_fund",
            handler=_emergency_fund_handler,
            description="Compute the recommended emergency fund size from monthly expenses.",
            parameters={
                "type": "object",
                "properties": {
                    "monthly_expenses": {"type": "number", "description": "Average monthly expenses."},
                    "months": {"type": "integer", "description": "Months of expenses to cover (default 6)."},
                },
                "required": ["monthly_expenses"],
            },
        )
    )

    tool_manager.register(
        Tool(
            name="get_current_date",
            handler=_current_date_handler,
            description="Return today's date in ISO format.",
            parameters={"type": "object", "properties": {}},
        )
    )
    logger.info("Registered %d finance tools", len(tool_manager.get_tool_names()))
