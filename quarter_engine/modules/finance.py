"""
Finance resolver — debt, equity, dividends, interest, and board votes.

Behavioral Contract:
- Runs last, so interest and dividends see the round's final pre-sales cash
- Financing flows (proceeds, principal repayment, buybacks, dividends) move
  cash directly; only interest and fees count as costs
- Board votes draw from the round's context, one draw per proposal
- financial_ratios() and update_market_cap() are used by the orchestrator
  after the market has cleared
"""

import math
from typing import Dict, List

from quarter_engine.core.random_context import IdGenerator, RandomContext
from quarter_engine.models.decisions import FinanceDecisions
from quarter_engine.models.market import MarketState
from quarter_engine.models.results import ModuleName, ModuleResult
from quarter_engine.models.team import (
    BoardDecision,
    DebtInstrument,
    DebtKind,
    DividendRecord,
    TeamState,
)
from quarter_engine.modules.base import ModuleResolver, clamp

T_BILL_ROUNDS = 1
BOND_ROUNDS = 20
LOAN_SPREAD = 1.0                       # Percentage points over corporate bond yield
LOAN_FEE_RATE = 0.01
ISSUANCE_DISCOUNT = 0.05
ISSUANCE_FEE_RATE = 0.03
MIN_SHARES = 1_000_000
MAX_BUYBACK_BOOST = 0.15
FACTORY_BOOK_VALUE = 50_000_000

BOARD_PROPOSALS: Dict[str, float] = {   # Proposal -> approval adjustment
    "dividend_increase": 5,
    "share_buyback": 0,
    "expansion": -5,
    "acquisition": -15,
    "executive_compensation": -10,
    "sustainability_pledge": 5,
}


def board_approval_probability(state: TeamState, proposal: str) -> float:
    """Percent chance (10-95) that the board approves ``proposal``."""
    probability = 50.0 + BOARD_PROPOSALS.get(proposal, 0.0)
    if state.cash > 100_000_000:
        probability += 10
    elif state.cash < 20_000_000:
        probability -= 15
    equity = book_equity(state)
    if equity > 0 and state.total_debt / equity > 1.5:
        probability -= 10
    if state.esg_score > 600:
        probability += 8
    elif state.esg_score < 300:
        probability -= 12
    if state.workforce.morale > 70:
        probability += 5
    return clamp(probability, 10, 95)


def book_equity(state: TeamState) -> float:
    return state.cash + len(state.factories) * FACTORY_BOOK_VALUE - state.total_debt


def financial_ratios(state: TeamState, revenue: float, net_income: float, cogs: float) -> Dict[str, float]:
    equity = book_equity(state)
    assets = state.cash + len(state.factories) * FACTORY_BOOK_VALUE
    short_term = state.short_term_debt

    def ratio(numerator: float, denominator: float) -> float:
        return numerator / denominator if denominator else 0.0

    return {
        "current_ratio": ratio(state.cash, short_term),
        "cash_ratio": ratio(state.cash, short_term),
        "debt_to_equity": ratio(state.total_debt, equity),
        "roe": ratio(net_income, equity),
        "roa": ratio(net_income, assets),
        "gross_margin": ratio(revenue - cogs, revenue),
        "net_margin": ratio(net_income, revenue),
    }


def update_market_cap(state: TeamState) -> None:
    """Move the share price halfway toward an earnings- or book-based target."""
    avg_brand = sum(state.brand.values()) / len(state.brand) if state.brand else 0.0
    if state.eps > 0:
        pe = 12 + 8 * avg_brand + state.esg_score / 200
        target = state.eps * 4 * pe
    else:
        target = max(0.0, book_equity(state)) / state.shares_outstanding * 0.8
    state.share_price = max(1.0, 0.5 * state.share_price + 0.5 * target)
    state.market_cap = state.share_price * state.shares_outstanding


class FinanceResolver(ModuleResolver[FinanceDecisions]):
    module = ModuleName.FINANCE

    def validate(self, state: TeamState, decisions: FinanceDecisions, market: MarketState) -> List[str]:
        problems = []
        if decisions.buyback_amount > 0 and decisions.buyback_amount > state.cash:
            problems.append("buyback exceeds available cash")
        dividends = decisions.dividend_per_share * state.shares_outstanding
        if dividends > 0 and dividends > state.cash:
            problems.append("dividend payout exceeds available cash")
        for proposal in decisions.board_proposals:
            if proposal not in BOARD_PROPOSALS:
                problems.append(f"unknown board proposal '{proposal}'")
        return problems

    def apply(self, state: TeamState, decisions: FinanceDecisions, ctx: RandomContext,
              market: MarketState) -> ModuleResult:
        round_number = market.round_number
        ids = IdGenerator(round_number, state.id)
        rates = market.interest_rates
        costs = 0.0
        messages: List[str] = []
        changes: Dict[str, object] = {}

        # Service existing debt before adding new instruments
        interest = 0.0
        repaid = 0.0
        outstanding = []
        for instrument in state.debt:
            interest += instrument.principal * instrument.annual_rate / 100 / 4
            instrument.rounds_remaining -= 1
            if instrument.rounds_remaining <= 0:
                repaid += instrument.principal
            else:
                outstanding.append(instrument)
        state.debt = outstanding
        state.cash -= repaid
        costs += interest
        if repaid:
            messages.append(f"Repaid ${repaid:,.0f} of maturing debt")
        changes["interest"] = interest

        if decisions.t_bills > 0:
            self._borrow(state, ids, DebtKind.T_BILL, decisions.t_bills, rates.federal_rate,
                         T_BILL_ROUNDS, round_number)
            messages.append(f"Issued ${decisions.t_bills:,.0f} in T-bills")
        if decisions.corporate_bonds > 0:
            self._borrow(state, ids, DebtKind.CORPORATE_BOND, decisions.corporate_bonds,
                         rates.corporate_bond, BOND_ROUNDS, round_number)
            messages.append(f"Issued ${decisions.corporate_bonds:,.0f} in corporate bonds")
        for loan in decisions.loans:
            self._borrow(state, ids, DebtKind.LOAN, loan.amount, rates.corporate_bond + LOAN_SPREAD,
                         math.ceil(loan.term_months / 3), round_number)
            costs += loan.amount * LOAN_FEE_RATE
            messages.append(f"Took a ${loan.amount:,.0f} loan over {loan.term_months} months")
        if decisions.loans:
            changes["loans_taken"] = len(decisions.loans)

        if decisions.stock_issuance > 0:
            old_shares = state.shares_outstanding
            issue_price = state.share_price * (1 - ISSUANCE_DISCOUNT)
            proceeds = decisions.stock_issuance * issue_price
            state.cash += proceeds
            state.shares_outstanding = old_shares + decisions.stock_issuance
            state.share_price = (old_shares * state.share_price
                                 + decisions.stock_issuance * issue_price) / state.shares_outstanding
            costs += proceeds * ISSUANCE_FEE_RATE
            changes["shares_issued"] = decisions.stock_issuance
            messages.append(f"Issued {decisions.stock_issuance:,} shares for ${proceeds:,.0f}")

        if decisions.buyback_amount > 0:
            old_shares = state.shares_outstanding
            bought = min(int(decisions.buyback_amount // state.share_price), old_shares - MIN_SHARES)
            if bought > 0:
                spent = bought * state.share_price
                state.cash -= spent
                state.shares_outstanding = old_shares - bought
                state.share_price *= 1 + min(MAX_BUYBACK_BOOST, bought / old_shares * 0.5)
                changes["shares_bought_back"] = bought
                messages.append(f"Bought back {bought:,} shares for ${spent:,.0f}")
            else:
                messages.append(f"Buyback skipped: share count cannot fall below {MIN_SHARES:,}")

        if decisions.dividend_per_share > 0:
            total = decisions.dividend_per_share * state.shares_outstanding
            state.cash -= total
            state.dividend_history.append(DividendRecord(
                round_number=round_number,
                per_share=decisions.dividend_per_share,
                total=total,
            ))
            annual_yield = decisions.dividend_per_share * 4 / state.share_price
            if annual_yield > 0.05:
                state.share_price *= 0.98
            elif annual_yield > 0.02:
                state.share_price *= 1.02
            changes["dividends_paid"] = total
            messages.append(f"Paid ${total:,.0f} in dividends (${decisions.dividend_per_share:.2f}/share)")

        approved = []
        for proposal in decisions.board_proposals:
            probability = board_approval_probability(state, proposal)
            passed = ctx.chance(probability / 100)
            state.board_history.append(BoardDecision(
                round_number=round_number,
                proposal=proposal,
                probability=probability,
                approved=passed,
            ))
            if passed:
                approved.append(proposal)
                if proposal == "sustainability_pledge":
                    state.esg_score = min(1000.0, state.esg_score + 25)
                elif proposal == "executive_compensation":
                    state.workforce.morale = clamp(state.workforce.morale + 3, 0, 100)
            verdict = "approved" if passed else "rejected"
            messages.append(f"Board {verdict} '{proposal}' ({probability:.0f}% likelihood)")
        if decisions.board_proposals:
            changes["board_approved"] = approved

        state.market_cap = state.share_price * state.shares_outstanding
        changes["total_debt"] = state.total_debt
        return ModuleResult(
            module=self.module,
            success=True,
            changes=changes,
            costs=costs,
            messages=messages,
        )

    @staticmethod
    def _borrow(state: TeamState, ids: IdGenerator, kind: DebtKind, amount: float,
                rate: float, rounds: int, round_number: int) -> None:
        state.debt.append(DebtInstrument(
            id=ids.next(kind.value),
            kind=kind,
            principal=amount,
            annual_rate=max(0.0, rate),
            rounds_remaining=max(1, rounds),
            issued_round=round_number,
        ))
        state.cash += amount
