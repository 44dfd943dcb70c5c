"""Turn financial metrics into ordered, severity-tagged recommendations."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional

from aggregation import FinancialMetrics, Number, TransactionRecord
from models import TransactionType

LARGE_TRANSACTION_AMOUNT = 5000
LARGE_TRANSACTION_MIN_COUNT = 5
LARGE_TRANSACTION_WINDOW_DAYS = 30
STRONG_NET_WORTH = 100_000


class Severity(str, Enum):
    success = "success"
    warning = "warning"
    error = "error"
    info = "info"


@dataclass(frozen=True)
class Insight:
    title: str
    description: str
    recommendation: str
    severity: Severity
    metric: str


@dataclass(frozen=True)
class InsightReport:
    insights: list[Insight]
    health_score: int

    def count(self, severity: Severity) -> int:
        return sum(1 for i in self.insights if i.severity == severity)

    def as_dict(self) -> dict[str, object]:
        return {
            "health_score": self.health_score,
            "counts": {s.value: self.count(s) for s in Severity},
            "insights": [_insight_dict(i) for i in self.insights],
            "priority_actions": [_insight_dict(i) for i in priority_actions(self)],
        }


def _insight_dict(insight: Insight) -> dict[str, str]:
    return {
        "title": insight.title,
        "description": insight.description,
        "recommendation": insight.recommendation,
        "severity": insight.severity.value,
        "metric": insight.metric,
    }


def _band_high(value: float, good: float, fair: float, low: Severity) -> Severity:
    if value >= good:
        return Severity.success
    if value >= fair:
        return Severity.warning
    return low


def _band_low(value: float, good: float, fair: float) -> Severity:
    if value <= good:
        return Severity.success
    if value <= fair:
        return Severity.warning
    return Severity.error


def _money(value: Number, currency: str) -> str:
    return f"{currency}{abs(value):,.0f}"


def savings_insight(rate: float) -> Insight:
    severity = _band_high(rate, 20, 10, Severity.error)
    recommendation = {
        Severity.success: "Excellent! Consider increasing investments or exploring "
        "higher-yield savings options.",
        Severity.warning: "Good start! Try to increase your savings rate by reducing "
        "discretionary expenses or finding additional income sources.",
        Severity.error: "Focus on creating a budget and cutting unnecessary expenses. "
        "Start with a goal of saving 10% of your income.",
    }[severity]
    return Insight(
        title="Savings Rate Performance",
        description=f"Your current savings rate is {rate:.1f}%. Financial experts "
        "recommend saving at least 20% of your income.",
        recommendation=recommendation,
        severity=severity,
        metric=f"{rate:.1f}%",
    )


def emergency_fund_insight(
    ratio: float, fund: Number, target: Number, currency: str
) -> Insight:
    severity = _band_high(ratio, 100, 50, Severity.error)
    if severity == Severity.success:
        recommendation = (
            "Great! You have adequate emergency funds. Consider investing any "
            "excess in higher-yield options."
        )
    elif severity == Severity.warning:
        recommendation = (
            "You're halfway there! Continue building your emergency fund before "
            "making major investments."
        )
    else:
        shortfall = max(target - fund, 0)
        recommendation = (
            "Priority: Build your emergency fund first. "
            f"Aim for {_money(shortfall, currency)} more."
        )
    return Insight(
        title="Emergency Fund Status",
        description=f"You have {_money(fund, currency)} in emergency funds. The "
        "recommended amount is 3-6 months of expenses "
        f"({_money(target, currency)}).",
        recommendation=recommendation,
        severity=severity,
        metric=f"{ratio:.0f}%",
    )


def debt_insight(ratio: float) -> Insight:
    severity = _band_low(ratio, 30, 50)
    recommendation = {
        Severity.success: "Excellent debt management! You have a healthy balance "
        "between assets and liabilities.",
        Severity.warning: "Your debt levels are manageable. Consider paying down "
        "high-interest debt first.",
        Severity.error: "Focus on debt reduction. Consider debt consolidation or the "
        "debt snowball method to reduce liabilities.",
    }[severity]
    return Insight(
        title="Debt Management",
        description=f"Your debt-to-asset ratio is {ratio:.1f}%. A ratio below 30% "
        "is considered healthy.",
        recommendation=recommendation,
        severity=severity,
        metric=f"{ratio:.1f}%",
    )


def investment_insight(ratio: float) -> Insight:
    severity = _band_high(ratio, 60, 30, Severity.info)
    recommendation = {
        Severity.success: "Good investment allocation! Ensure your portfolio is "
        "well-diversified across different asset classes.",
        Severity.warning: "Consider increasing your investment allocation for "
        "long-term growth, especially in equity mutual funds or ETFs.",
        Severity.info: "After building your emergency fund, prioritize increasing "
        "investments for wealth building and inflation protection.",
    }[severity]
    return Insight(
        title="Investment Allocation",
        description=f"{ratio:.1f}% of your assets are in investments. Young "
        "investors should typically have 60-80% in growth investments.",
        recommendation=recommendation,
        severity=severity,
        metric=f"{ratio:.1f}%",
    )


def diversification_insight(type_count: int) -> Insight:
    severity = _band_high(type_count, 5, 3, Severity.info)
    recommendation = {
        Severity.success: "Excellent diversification! Ensure each account serves a "
        "specific purpose in your financial strategy.",
        Severity.warning: "Good diversification. Consider adding investment accounts "
        "or specialized savings accounts.",
        Severity.info: "Increase diversification by adding different account types "
        "like investment accounts, high-yield savings, or retirement accounts.",
    }[severity]
    return Insight(
        title="Account Diversification",
        description=f"You have {type_count} different types of accounts. "
        "Diversification helps optimize returns and manage risk.",
        recommendation=recommendation,
        severity=severity,
        metric=f"{type_count} types",
    )


def count_large_expenses(
    transactions: Iterable[TransactionRecord], today: date
) -> int:
    cutoff = today - timedelta(days=LARGE_TRANSACTION_WINDOW_DAYS)
    return sum(
        1
        for t in transactions
        if t.type == TransactionType.expense
        and t.amount > LARGE_TRANSACTION_AMOUNT
        and t.date >= cutoff
    )


def large_transaction_insight(
    transactions: Iterable[TransactionRecord], today: date, currency: str
) -> Optional[Insight]:
    count = count_large_expenses(transactions, today)
    if count <= LARGE_TRANSACTION_MIN_COUNT:
        return None
    return Insight(
        title="Large Transaction Alert",
        description=f"You had {count} high-value transactions "
        f"(>{_money(LARGE_TRANSACTION_AMOUNT, currency)}) in the last "
        f"{LARGE_TRANSACTION_WINDOW_DAYS} days.",
        recommendation="Review these large expenses to ensure they align with your "
        "budget and financial goals. Consider if any could be reduced or eliminated.",
        severity=Severity.warning,
        metric=f"{count} large txns",
    )


def net_worth_insight(net_worth: Number, currency: str) -> Insight:
    if net_worth >= STRONG_NET_WORTH:
        severity = Severity.success
        recommendation = (
            "Strong financial position! Focus on growing your net worth through "
            "smart investments and continued savings."
        )
    elif net_worth >= 0:
        severity = Severity.warning
        recommendation = (
            "Positive net worth is great! Continue building assets and minimizing "
            "liabilities to increase your wealth."
        )
    else:
        severity = Severity.error
        recommendation = (
            "Focus on reducing debt and building assets. Create a plan to move from "
            "negative to positive net worth."
        )
    return Insight(
        title="Net Worth Status",
        description=f"Your current net worth is {_money(net_worth, currency)}. This "
        "represents your total financial position.",
        recommendation=recommendation,
        severity=severity,
        metric=_money(net_worth, currency),
    )


def health_score(insights: list[Insight]) -> int:
    if not insights:
        return 0
    successes = sum(1 for i in insights if i.severity == Severity.success)
    # Half-up rounding, so 12.5 scores 13.
    return math.floor(successes / len(insights) * 100 + 0.5)


def generate_insights(
    metrics: FinancialMetrics,
    transactions: Iterable[TransactionRecord] = (),
    *,
    today: Optional[date] = None,
    currency: str = "₹",
) -> InsightReport:
    today = today or date.today()
    candidates = [
        savings_insight(metrics.savings_rate),
        emergency_fund_insight(
            metrics.emergency_fund_ratio,
            metrics.emergency_fund_balance,
            metrics.emergency_fund_target,
            currency,
        ),
        debt_insight(metrics.debt_to_asset_ratio),
        investment_insight(metrics.investment_ratio),
        diversification_insight(metrics.account_type_count),
        large_transaction_insight(transactions, today, currency),
        net_worth_insight(metrics.net_worth, currency),
    ]
    insights = [i for i in candidates if i is not None]
    return InsightReport(insights=insights, health_score=health_score(insights))


def priority_actions(report: InsightReport, limit: int = 3) -> list[Insight]:
    return [i for i in report.insights if i.severity == Severity.error][:limit]
