"""
Financial reconciliation — credit bucket, loan/card counts, EMI burden.

Pure functions over the untyped MQL banking sections. No I/O.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from leaddesk.services.fields import to_number

HOME_LOAN_KEYWORDS = ('home', 'housing', 'property')
AUTO_LOAN_KEYWORDS = ('auto', 'vehicle')

DEFAULT_STATUSES = ('default', 'npa')
CLOSED_STATUSES = ('closed', 'paid_off')

NOT_AVAILABLE = 'N/A'


@dataclass
class FinancialSummary:
    credit_score_range: str
    final_income_lacs: Optional[float]
    total_active_loans: Optional[int]
    active_home_loans: int
    closed_home_loans: int
    active_auto_loans: int
    active_credit_cards: int
    total_home_auto_emi: float
    emi_to_income_ratio: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def credit_score_range(score: Any) -> str:
    """Bucket a credit score: <600, 600-700, 700-800, 800+ or N/A."""
    n = to_number(score)
    if n is None:
        return NOT_AVAILABLE
    if n < 600:
        return '<600'
    if n < 700:
        return '600-700'
    if n < 800:
        return '700-800'
    return '800+'


def is_active_loan(loan: Dict[str, Any]) -> bool:
    """
    Explicit is_active=True wins, explicit False next; only when the flag is
    absent is activity inferred from a missing closure date.
    """
    flag = loan.get('is_active')
    if flag is True:
        return True
    if flag is False:
        return False
    return not loan.get('date_closed')


def _matches(loan: Dict[str, Any], keywords) -> bool:
    loan_type = str(loan.get('loan_type') or '').lower()
    return any(k in loan_type for k in keywords)


def is_home_loan(loan: Dict[str, Any]) -> bool:
    return _matches(loan, HOME_LOAN_KEYWORDS)


def is_auto_loan(loan: Dict[str, Any]) -> bool:
    return _matches(loan, AUTO_LOAN_KEYWORDS)


def installment_amount(loan: Dict[str, Any]) -> float:
    """installment_amount, falling back to emi_amount; non-numeric counts as 0."""
    raw = loan.get('installment_amount')
    if raw is None:
        raw = loan.get('emi_amount')
    amount = to_number(raw)
    return amount if amount is not None else 0.0


def monthly_income(final_income_lacs: Optional[float]) -> Optional[float]:
    """Annual income in lakhs -> monthly income in rupees."""
    if final_income_lacs is None:
        return None
    return final_income_lacs * 100_000 / 12


def emi_to_income_ratio(emi_sum: float, income_per_month: Optional[float]) -> str:
    """'12.5%' when both sides are positive, otherwise 'N/A' (never '0%')."""
    if not income_per_month or income_per_month <= 0 or emi_sum <= 0:
        return NOT_AVAILABLE
    return f"{emi_sum / income_per_month * 100:.1f}%"


def summarize(
    credit_score: Any,
    income: Optional[Dict[str, Any]],
    loan_summary: Optional[Dict[str, Any]],
    loans: Optional[List[Dict[str, Any]]],
    cards: Optional[List[Dict[str, Any]]],
) -> FinancialSummary:
    """Merge the MQL credit, income and banking sections into a FinancialSummary."""
    loans = [l for l in (loans or []) if isinstance(l, dict)]
    cards = [c for c in (cards or []) if isinstance(c, dict)]
    income = income or {}
    loan_summary = loan_summary or {}

    active = [l for l in loans if is_active_loan(l)]
    active_home = [l for l in active if is_home_loan(l)]
    active_auto = [l for l in active if is_auto_loan(l)]

    closed_home = sum(
        1 for l in loans
        if is_home_loan(l) and (l.get('is_active') is False or bool(l.get('date_closed')))
    )

    # A loan matching both vocabularies ("Auto Home Loan") is counted once
    emi_loans = {id(l): l for l in active_home + active_auto}.values()
    emi_sum = sum(installment_amount(l) for l in emi_loans)

    final_income = to_number(income.get('final_income_lacs'))
    ratio = emi_to_income_ratio(emi_sum, monthly_income(final_income))

    total_active = to_number(loan_summary.get('active_loans'))

    return FinancialSummary(
        credit_score_range=credit_score_range(credit_score),
        final_income_lacs=final_income,
        total_active_loans=int(total_active) if total_active is not None else None,
        active_home_loans=len(active_home),
        closed_home_loans=closed_home,
        active_auto_loans=len(active_auto),
        active_credit_cards=sum(1 for c in cards if c.get('is_active') is True),
        total_home_auto_emi=emi_sum,
        emi_to_income_ratio=ratio,
    )


def credit_behavior_signal(
    loans: Optional[List[Dict[str, Any]]],
    active_loans: Optional[int],
    credit_score: Any,
) -> str:
    """Coarse borrower label derived from loan statuses and score."""
    loans = [l for l in (loans or []) if isinstance(l, dict)]
    statuses = [str(l.get('status') or '').lower() for l in loans]
    closed = sum(1 for s in statuses if s in CLOSED_STATUSES)
    active = active_loans or 0
    score = to_number(credit_score)

    if any(s in DEFAULT_STATUSES for s in statuses):
        return 'credit_risk'
    if active == 0 and closed > 0 and score is not None and score >= 750:
        return 'clean_credit'
    if active >= 3:
        return 'active_borrower'
    if active <= 1 and closed == 0 and (score is None or score < 700):
        return 'conservative_borrower'
    return 'moderate_borrower'


def summarize_payload(lead_data: Dict[str, Any]) -> FinancialSummary:
    """Convenience wrapper over one lead entry of an MQL response."""
    return summarize(
        lead_data.get('credit_score'),
        lead_data.get('income'),
        lead_data.get('banking_summary'),
        lead_data.get('banking_loans'),
        lead_data.get('banking_cards'),
    )
