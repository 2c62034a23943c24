"""Record types consumed by the engine.

Records arrive from the persistence layer as plain mappings using the
backend's field names (``paidDate``, ``customBudgetId``, ...). Each
dataclass offers ``from_record`` to build itself from such a mapping, and
the ``as_*`` helpers accept either form so callers can pass whatever they
already hold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .exceptions import InvalidRecordError
from .money import ZERO, to_money

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = {'income', 'expense'}
PRIORITIES = ('needs', 'wants', 'savings')
DEFAULT_PRIORITY = 'wants'
FREQUENCIES = {'weekly', 'biweekly', 'monthly'}
FUNDING_TYPES = {'fixed', 'percentage'}
GOAL_STATUSES = {'active', 'paused', 'completed', 'archived'}
CUSTOM_BUDGET_STATUSES = {'planned', 'active', 'completed'}
WALLET_EXPENSE = 'expense_from_wallet'


def _pick(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _require_mapping(record: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(record, Mapping):
        raise InvalidRecordError(f"{kind} record must be a mapping, got {type(record).__name__}")
    return record


@dataclass(frozen=True)
class Transaction:
    id: str
    type: str
    amount: Decimal
    date: Any
    paid_date: Any = None
    is_paid: bool = False
    category_id: Optional[str] = None
    custom_budget_id: Optional[str] = None
    financial_priority: Optional[str] = None
    is_cash_transaction: bool = False
    cash_transaction_type: Optional[str] = None
    cash_currency: Optional[str] = None
    cash_amount: Optional[Decimal] = None

    @property
    def is_expense(self) -> bool:
        return self.type == 'expense'

    @property
    def is_income(self) -> bool:
        return self.type == 'income'

    @property
    def is_wallet_expense(self) -> bool:
        """True for expenses paid out of a cash wallet rather than an account."""
        return self.is_expense and self.is_cash_transaction and self.cash_transaction_type == WALLET_EXPENSE

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Transaction':
        record = _require_mapping(record, 'Transaction')
        txn_type = str(_pick(record, 'type', default='')).strip().lower()
        if txn_type not in TRANSACTION_TYPES:
            raise InvalidRecordError(f"Transaction {record.get('id')!r} has unknown type {txn_type!r}")
        cash_amount = _pick(record, 'cashAmount', 'cash_amount')
        return cls(
            id=str(_pick(record, 'id', default='')),
            type=txn_type,
            amount=to_money(_pick(record, 'amount', default=0)),
            date=_pick(record, 'date'),
            paid_date=_pick(record, 'paidDate', 'paid_date'),
            is_paid=bool(_pick(record, 'isPaid', 'is_paid', default=False)),
            category_id=_pick(record, 'category_id', 'categoryId'),
            custom_budget_id=_pick(record, 'customBudgetId', 'custom_budget_id'),
            financial_priority=_pick(record, 'financial_priority', 'financialPriority'),
            is_cash_transaction=bool(_pick(record, 'isCashTransaction', 'is_cash_transaction', default=False)),
            cash_transaction_type=_pick(record, 'cashTransactionType', 'cash_transaction_type'),
            cash_currency=_pick(record, 'cashCurrency', 'cash_currency'),
            cash_amount=to_money(cash_amount) if cash_amount is not None else None,
        )


@dataclass(frozen=True)
class Category:
    id: str
    name: str = ''
    priority: str = DEFAULT_PRIORITY

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Category':
        record = _require_mapping(record, 'Category')
        return cls(
            id=str(_pick(record, 'id', default='')),
            name=str(_pick(record, 'name', default='')),
            priority=str(_pick(record, 'priority', default=DEFAULT_PRIORITY)),
        )


@dataclass(frozen=True)
class CashAllocation:
    currency_code: str
    amount: Decimal = ZERO

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'CashAllocation':
        record = _require_mapping(record, 'CashAllocation')
        return cls(
            currency_code=str(_pick(record, 'currencyCode', 'currency_code', default='')),
            amount=to_money(_pick(record, 'amount', default=0)),
        )


@dataclass(frozen=True)
class CategoryAllocation:
    category_id: str
    allocated_amount: Decimal = ZERO

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'CategoryAllocation':
        record = _require_mapping(record, 'CategoryAllocation')
        return cls(
            category_id=str(_pick(record, 'categoryId', 'category_id', default='')),
            allocated_amount=to_money(_pick(record, 'allocatedAmount', 'allocated_amount', default=0)),
        )


@dataclass(frozen=True)
class CustomBudget:
    id: str
    name: str
    allocated_amount: Decimal
    start_date: Any
    end_date: Any
    status: str = 'active'
    cash_allocations: Tuple[CashAllocation, ...] = ()

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'CustomBudget':
        record = _require_mapping(record, 'CustomBudget')
        budget_id = _pick(record, 'id')
        if budget_id is None:
            raise InvalidRecordError("CustomBudget record has no id")
        allocations = _pick(record, 'cashAllocations', 'cash_allocations', default=[]) or []
        return cls(
            id=str(budget_id),
            name=str(_pick(record, 'name', default='')),
            allocated_amount=to_money(_pick(record, 'allocatedAmount', 'allocated_amount', default=0)),
            start_date=_pick(record, 'startDate', 'start_date'),
            end_date=_pick(record, 'endDate', 'end_date'),
            status=str(_pick(record, 'status', default='active')),
            cash_allocations=tuple(
                a if isinstance(a, CashAllocation) else CashAllocation.from_record(a) for a in allocations
            ),
        )


@dataclass(frozen=True)
class SystemBudget:
    id: Optional[str]
    name: str
    system_budget_type: str
    budget_amount: Decimal
    start_date: Any
    end_date: Any
    target_percentage: Decimal = ZERO
    target_amount: Decimal = ZERO
    color: str = ''

    @property
    def allocated_amount(self) -> Decimal:
        return self.budget_amount

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'SystemBudget':
        record = _require_mapping(record, 'SystemBudget')
        budget_type = _pick(record, 'systemBudgetType', 'system_budget_type')
        if budget_type not in PRIORITIES:
            raise InvalidRecordError(f"SystemBudget {record.get('id')!r} has unknown type {budget_type!r}")
        raw_id = _pick(record, 'id')
        return cls(
            id=str(raw_id) if raw_id is not None else None,
            name=str(_pick(record, 'name', default=budget_type.title())),
            system_budget_type=budget_type,
            budget_amount=to_money(_pick(record, 'budgetAmount', 'budget_amount', default=0)),
            start_date=_pick(record, 'startDate', 'start_date'),
            end_date=_pick(record, 'endDate', 'end_date'),
            target_percentage=to_money(_pick(record, 'target_percentage', 'targetPercentage', default=0)),
            target_amount=to_money(_pick(record, 'target_amount', 'targetAmount', default=0)),
            color=str(_pick(record, 'color', default='')),
        )

    def to_record(self) -> dict:
        """Render the budget with the backend's field names."""
        record = {
            'name': self.name,
            'systemBudgetType': self.system_budget_type,
            'budgetAmount': self.budget_amount,
            'startDate': self.start_date,
            'endDate': self.end_date,
            'target_percentage': self.target_percentage,
            'target_amount': self.target_amount,
            'color': self.color,
            'cashAllocations': [],
        }
        if self.id is not None:
            record['id'] = self.id
        return record


@dataclass(frozen=True)
class BudgetGoal:
    priority: str
    target_percentage: Decimal = ZERO
    target_amount: Decimal = ZERO
    id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'BudgetGoal':
        record = _require_mapping(record, 'BudgetGoal')
        priority = _pick(record, 'priority')
        if priority not in PRIORITIES:
            raise InvalidRecordError(f"BudgetGoal has unknown priority {priority!r}")
        raw_id = _pick(record, 'id')
        return cls(
            priority=priority,
            target_percentage=to_money(_pick(record, 'target_percentage', 'targetPercentage', default=0)),
            target_amount=to_money(_pick(record, 'target_amount', 'targetAmount', default=0)),
            id=str(raw_id) if raw_id is not None else None,
        )


@dataclass(frozen=True)
class FundingRule:
    type: str = 'fixed'
    amount: Decimal = ZERO
    percentage: Decimal = ZERO
    frequency: str = 'monthly'

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'FundingRule':
        record = _require_mapping(record, 'FundingRule')
        return cls(
            type=str(_pick(record, 'type', default='fixed')),
            amount=to_money(_pick(record, 'amount', default=0)),
            percentage=to_money(_pick(record, 'percentage', default=0)),
            frequency=str(_pick(record, 'frequency', default='monthly')),
        )


@dataclass(frozen=True)
class LedgerEntry:
    timestamp: Any
    amount: Decimal
    source: str = 'manual'
    notes: str = ''
    period: str = ''

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'LedgerEntry':
        record = _require_mapping(record, 'LedgerEntry')
        return cls(
            timestamp=_pick(record, 'timestamp'),
            amount=to_money(_pick(record, 'amount', default=0)),
            source=str(_pick(record, 'source', default='manual')),
            notes=str(_pick(record, 'notes', default='')),
            period=str(_pick(record, 'period', default='')),
        )


@dataclass(frozen=True)
class Goal:
    id: str
    name: str
    target_amount: Decimal
    virtual_balance: Decimal = ZERO
    deadline: Any = None
    funding_rule: Optional[FundingRule] = None
    ledger_history: Tuple[LedgerEntry, ...] = ()
    status: str = 'active'

    @property
    def frequency(self) -> str:
        return self.funding_rule.frequency if self.funding_rule else 'monthly'

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Goal':
        record = _require_mapping(record, 'Goal')
        rule = _pick(record, 'funding_rule', 'fundingRule')
        history = _pick(record, 'ledger_history', 'ledgerHistory', default=[]) or []
        return cls(
            id=str(_pick(record, 'id', default='')),
            name=str(_pick(record, 'name', 'title', default='')),
            target_amount=to_money(_pick(record, 'target_amount', 'targetAmount', default=0)),
            virtual_balance=to_money(_pick(record, 'virtual_balance', 'virtualBalance', default=0)),
            deadline=_pick(record, 'deadline'),
            funding_rule=(
                rule if isinstance(rule, FundingRule) or rule is None else FundingRule.from_record(rule)
            ),
            ledger_history=tuple(
                e if isinstance(e, LedgerEntry) else LedgerEntry.from_record(e) for e in history
            ),
            status=str(_pick(record, 'status', default='active')),
        )


@dataclass(frozen=True)
class BudgetSettings:
    """User settings relevant to budget limits.

    ``goal_mode`` True means budget goals are percentages of income, False
    means they are absolute amounts. The currency fields only matter for
    display formatting.
    """

    goal_mode: bool = True
    fixed_lifestyle_mode: bool = False
    currency_symbol: str = '$'
    currency_code: str = 'USD'

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> 'BudgetSettings':
        if not record:
            return cls()
        record = _require_mapping(record, 'Settings')
        budget_system = record.get('budgetSystem')
        goal_mode = _pick(record, 'goalMode', 'goal_mode')
        if goal_mode is None:
            goal_mode = budget_system != 'absolute'
        return cls(
            goal_mode=bool(goal_mode),
            fixed_lifestyle_mode=bool(_pick(record, 'fixedLifestyleMode', 'fixed_lifestyle_mode', default=False)),
            currency_symbol=str(_pick(record, 'currencySymbol', 'currency_symbol', default='$')),
            currency_code=str(_pick(record, 'baseCurrency', 'currency_code', default='USD')),
        )


def _coerce_all(items: Optional[Iterable[Any]], cls) -> List[Any]:
    coerced = []
    for item in items or []:
        if isinstance(item, cls):
            coerced.append(item)
            continue
        try:
            coerced.append(cls.from_record(item))
        except InvalidRecordError as exc:
            logger.warning("Skipping %s record: %s", cls.__name__, exc)
    return coerced


def as_transactions(items: Optional[Iterable[Any]]) -> List[Transaction]:
    return _coerce_all(items, Transaction)


def as_categories(items: Optional[Iterable[Any]]) -> List[Category]:
    return _coerce_all(items, Category)


def as_custom_budgets(items: Optional[Iterable[Any]]) -> List[CustomBudget]:
    return _coerce_all(items, CustomBudget)


def as_system_budgets(items: Optional[Iterable[Any]]) -> List[SystemBudget]:
    return _coerce_all(items, SystemBudget)


def as_budget_goals(items: Optional[Iterable[Any]]) -> List[BudgetGoal]:
    return _coerce_all(items, BudgetGoal)


def as_goal(item: Any) -> Goal:
    return item if isinstance(item, Goal) else Goal.from_record(item)


def as_settings(item: Any) -> BudgetSettings:
    return item if isinstance(item, BudgetSettings) else BudgetSettings.from_record(item)
