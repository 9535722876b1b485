"""
Financial Engine - trip profitability and driver settlement.

This service:
- Extracts trip metrics (miles, cubic feet, revenue, days) from trip and loads
- Calculates driver gross pay for all five pay modes
- Categorizes expenses and computes trip profit
- Writes rolled-up totals back onto the trip
- Produces a settlement preview (reimbursements, collections, net pay)
- Calculates per-load revenue lines and company receivables

Every monetary sub-amount is rounded half-up to cents as soon as it is
computed.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from tripflow.core.errors import NotFoundError
from tripflow.core.money import ZERO, round_money, to_decimal
from tripflow.data.models import (
    Driver,
    DriverCompensation,
    ExpenseCategory,
    ExpensePaidBy,
    Load,
    PayMode,
    PaymentMethod,
    RequestContext,
    Trip,
    TripExpense,
)
from tripflow.services.base import BaseService


class TripMetrics(BaseModel):
    """Inputs to driver pay."""

    miles: Decimal = ZERO
    cuft: Decimal = ZERO
    revenue: Decimal = ZERO
    days: int = 1


class PayComponent(BaseModel):
    """One line of a driver pay breakdown."""

    label: str
    amount: Decimal
    calculation: str


class DriverPayCalculation(BaseModel):
    """Gross pay for one pay mode with its itemization."""

    pay_mode: PayMode
    components: list[PayComponent] = Field(default_factory=list)
    breakdown: dict[str, Decimal] = Field(default_factory=dict)
    total_driver_pay: Decimal = ZERO


class ExpenseSummary(BaseModel):
    """Expenses split by category and by who funded them."""

    fuel: Decimal = ZERO
    tolls: Decimal = ZERO
    driver_pay: Decimal = ZERO
    other: Decimal = ZERO
    company_funded: Decimal = ZERO
    driver_funded: Decimal = ZERO
    unclassified: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return round_money(self.fuel + self.tolls + self.driver_pay + self.other)


class TripFinancials(BaseModel):
    """Rolled-up totals written onto the trip."""

    revenue_total: Decimal
    driver_pay_total: Decimal
    fuel_total: Decimal
    tolls_total: Decimal
    other_expenses_total: Decimal
    profit_total: Decimal
    total_cuft: Decimal
    driver_pay_breakdown: Optional[DriverPayCalculation] = None

    def trip_changes(self) -> dict[str, Any]:
        changes = self.model_dump(exclude={"driver_pay_breakdown"})
        changes["driver_pay_breakdown"] = (
            self.driver_pay_breakdown.model_dump(mode="json") if self.driver_pay_breakdown else None
        )
        return changes


class SettlementLine(BaseModel):
    description: str
    amount: Decimal
    method: Optional[str] = None


class RevenueLine(BaseModel):
    """One revenue line of a load, attributed to the company it is billed to."""

    load_id: str
    company_id: Optional[str] = None
    description: str
    amount: Decimal


class SettlementPreview(BaseModel):
    """What the driver will earn or owe when the trip settles."""

    trip_id: str
    trip_number: str
    driver_id: Optional[str]
    driver_name: Optional[str]

    pay: Optional[DriverPayCalculation]
    gross_pay: Decimal

    revenue_items: list[RevenueLine] = Field(default_factory=list)
    revenue_total: Decimal = ZERO
    receivables_by_company: dict[str, Decimal] = Field(default_factory=dict)

    reimbursements: Decimal
    reimbursement_items: list[SettlementLine] = Field(default_factory=list)
    collections: Decimal
    collection_items: list[SettlementLine] = Field(default_factory=list)

    net_pay: Decimal
    pay_status: str  # "owed_to_driver", "driver_owes", "settled"
    metrics: TripMetrics

    generated_at: datetime
    notes: list[str] = Field(default_factory=list)


class TripTotals(BaseModel):
    """Display totals for a trip."""

    total_revenue: Decimal
    total_collected: Decimal
    receivables: Decimal
    total_expenses: Decimal
    company_paid_expenses: Decimal
    driver_paid_expenses: Decimal
    unclassified_expenses: Decimal = ZERO
    total_cuft: Decimal
    actual_miles: Decimal


class LoadFinancials(BaseModel):
    """Revenue and receivables for a single load."""

    actual_cuft: Decimal
    rate_per_cuft: Decimal
    base_revenue: Decimal
    contract_accessorials_total: Decimal
    extra_accessorials_total: Decimal
    storage_total: Decimal
    total_revenue: Decimal
    collected_on_delivery: Decimal
    paid_to_company: Decimal
    company_owes: Decimal


def days_worked(start: Optional[date], end: Optional[date]) -> int:
    """Inclusive day count between start and end, minimum 1."""
    if start is None or end is None:
        return 1
    return max(1, (end - start).days + 1)


def extract_trip_metrics(trip: Trip, loads: Iterable[Load]) -> TripMetrics:
    """
    Collect the figures driver pay depends on.

    Miles come from the odometer when both readings exist, then
    actual_miles, then total_miles.
    """
    if trip.odometer_start is not None and trip.odometer_end is not None:
        miles = max(ZERO, trip.odometer_end - trip.odometer_start)
    elif trip.actual_miles is not None:
        miles = trip.actual_miles
    else:
        miles = to_decimal(trip.total_miles)

    cuft = ZERO
    revenue = ZERO
    for load in loads:
        volume = load.actual_cuft_loaded if load.actual_cuft_loaded is not None else load.estimated_cuft
        cuft += to_decimal(volume)
        revenue += to_decimal(load.total_rate)

    return TripMetrics(
        miles=miles,
        cuft=cuft,
        revenue=round_money(revenue),
        days=days_worked(trip.start_date, trip.end_date),
    )


def calculate_driver_pay(compensation: DriverCompensation, metrics: TripMetrics) -> DriverPayCalculation:
    """
    Calculate driver gross pay for the compensation's pay mode.

    Args:
        compensation: Pay mode and rates
        metrics: Trip miles, cubic feet, revenue and days

    Returns:
        DriverPayCalculation with itemized components
    """
    mode = compensation.pay_mode
    mile_rate = to_decimal(compensation.rate_per_mile)
    cuft_rate = to_decimal(compensation.rate_per_cuft)
    components: list[PayComponent] = []
    breakdown: dict[str, Decimal] = {}

    def per_mile() -> PayComponent:
        amount = round_money(metrics.miles * mile_rate)
        breakdown.update(miles=metrics.miles, rate_per_mile=mile_rate, mile_pay=amount)
        return PayComponent(
            label="Per Mile",
            amount=amount,
            calculation=f"{metrics.miles:,} mi x ${mile_rate:.2f}/mi",
        )

    def per_cuft() -> PayComponent:
        amount = round_money(metrics.cuft * cuft_rate)
        breakdown.update(cuft=metrics.cuft, rate_per_cuft=cuft_rate, cuft_pay=amount)
        return PayComponent(
            label="Per Cubic Foot",
            amount=amount,
            calculation=f"{metrics.cuft:,} cf x ${cuft_rate:.2f}/cf",
        )

    if mode == PayMode.PER_MILE:
        components.append(per_mile())
    elif mode == PayMode.PER_CUFT:
        components.append(per_cuft())
    elif mode == PayMode.PER_MILE_AND_CUFT:
        components.extend([per_mile(), per_cuft()])
    elif mode == PayMode.PERCENT_OF_REVENUE:
        pct = to_decimal(compensation.percent_of_revenue)
        amount = round_money(metrics.revenue * pct / Decimal("100"))
        breakdown.update(revenue=metrics.revenue, percent_of_revenue=pct)
        components.append(
            PayComponent(
                label="Percent of Revenue",
                amount=amount,
                calculation=f"{pct}% x ${metrics.revenue:.2f}",
            )
        )
    elif mode == PayMode.FLAT_DAILY_RATE:
        rate = to_decimal(compensation.flat_daily_rate)
        amount = round_money(metrics.days * rate)
        breakdown.update(days=Decimal(metrics.days), flat_daily_rate=rate)
        plural = "" if metrics.days == 1 else "s"
        components.append(
            PayComponent(
                label="Daily Rate",
                amount=amount,
                calculation=f"{metrics.days} day{plural} x ${rate:.2f}/day",
            )
        )

    total = round_money(sum((c.amount for c in components), ZERO))
    return DriverPayCalculation(
        pay_mode=mode, components=components, breakdown=breakdown, total_driver_pay=total
    )


def summarize_expenses(
    expenses: Iterable[TripExpense],
    driver_funded_methods: Iterable[str],
    company_funded_methods: Optional[Iterable[str]] = None,
) -> ExpenseSummary:
    """
    Bucket expenses into fuel, tolls, manual driver pay and other.

    Funding follows paid_by: driver methods are driver-funded; company methods
    and a missing paid_by are company-funded. A method in neither list is
    reported as unclassified. With no company list, every non-driver method
    counts as company-funded.
    """
    driver_methods = set(driver_funded_methods)
    company_methods = set(company_funded_methods) if company_funded_methods is not None else None
    fuel = tolls = driver_pay = other = ZERO
    company_funded = driver_funded = unclassified = ZERO

    for expense in expenses:
        amount = round_money(expense.amount)
        if expense.category == ExpenseCategory.FUEL:
            fuel += amount
        elif expense.category == ExpenseCategory.TOLLS:
            tolls += amount
        elif expense.category == ExpenseCategory.DRIVER_PAY:
            driver_pay += amount
        else:
            other += amount

        method = expense.paid_by.value if expense.paid_by is not None else None
        if method in driver_methods:
            driver_funded += amount
        elif method is None or company_methods is None or method in company_methods:
            company_funded += amount
        else:
            unclassified += amount

    return ExpenseSummary(
        fuel=round_money(fuel),
        tolls=round_money(tolls),
        driver_pay=round_money(driver_pay),
        other=round_money(other),
        company_funded=round_money(company_funded),
        driver_funded=round_money(driver_funded),
        unclassified=round_money(unclassified),
    )


def compute_trip_financials(
    trip: Trip,
    loads: list[Load],
    expenses: list[TripExpense],
    driver: Optional[Driver] = None,
    driver_funded_methods: Iterable[str] = (
        ExpensePaidBy.DRIVER_PERSONAL.value,
        ExpensePaidBy.DRIVER_CASH.value,
        ExpensePaidBy.DRIVER_CARD.value,
    ),
) -> TripFinancials:
    """
    Compute the trip's rolled-up totals.

    Driver pay uses the trip's compensation snapshot, falling back to the live
    driver record when no snapshot was taken. Manual driver_pay expenses are
    added on top of the computed pay.
    """
    metrics = extract_trip_metrics(trip, loads)
    summary = summarize_expenses(expenses, driver_funded_methods)

    compensation = trip.driver_compensation
    if compensation is None and driver is not None:
        compensation = driver.compensation()

    pay = calculate_driver_pay(compensation, metrics) if compensation is not None else None
    computed_pay = pay.total_driver_pay if pay else ZERO
    driver_pay_total = round_money(computed_pay + summary.driver_pay)

    profit = round_money(
        metrics.revenue - (driver_pay_total + summary.fuel + summary.tolls + summary.other)
    )

    return TripFinancials(
        revenue_total=metrics.revenue,
        driver_pay_total=driver_pay_total,
        fuel_total=summary.fuel,
        tolls_total=summary.tolls,
        other_expenses_total=summary.other,
        profit_total=profit,
        total_cuft=metrics.cuft,
        driver_pay_breakdown=pay,
    )


def calculate_net_pay(gross: Decimal, reimbursements: Decimal, collections: Decimal) -> Decimal:
    """Net driver pay = gross + reimbursements - collections."""
    return round_money(
        round_money(gross) + round_money(reimbursements) - round_money(collections)
    )


def pay_status_for(net_pay: Decimal) -> str:
    if net_pay > ZERO:
        return "owed_to_driver"
    if net_pay < ZERO:
        return "driver_owes"
    return "settled"


def load_revenue_items(load: Load) -> list[RevenueLine]:
    """Non-zero revenue lines for a load: linehaul, accessorials, storage and on-site extras."""
    financials = calculate_load_financials(load)
    move_in = round_money(load.storage_move_in_fee)
    daily = round_money(to_decimal(load.storage_daily_fee) * to_decimal(load.storage_days_billed))
    lines = [
        ("Linehaul (contract)", financials.base_revenue),
        ("Contract accessorials", financials.contract_accessorials_total),
        ("Storage move-in fee", move_in),
        ("Storage daily fee", daily),
        ("On-site accessorials (collected by driver)", financials.extra_accessorials_total),
    ]
    return [
        RevenueLine(load_id=load.id, company_id=load.company_id, description=description, amount=amount)
        for description, amount in lines
        if amount
    ]


def calculate_load_financials(load: Load) -> LoadFinancials:
    """
    Revenue and receivables for one load.

    Base revenue uses the contract rate when set, otherwise the load's rate.
    Company owes = total revenue - paid directly to the company - collected
    on delivery, never below zero. A storage drop keeps the collected amount
    out of the deduction.
    """
    cuft = to_decimal(load.actual_cuft_loaded)
    rate = to_decimal(
        load.contract_rate_per_cuft if load.contract_rate_per_cuft is not None else load.rate_per_cuft
    )
    base = round_money(cuft * rate)
    contract = round_money(load.contract_accessorials_total)
    extra = round_money(load.extra_accessorials_total)
    storage = round_money(
        to_decimal(load.storage_move_in_fee)
        + round_money(to_decimal(load.storage_daily_fee) * to_decimal(load.storage_days_billed))
    )
    total = round_money(base + contract + extra + storage)
    collected = round_money(load.amount_collected_on_delivery)
    paid_to_company = round_money(load.amount_paid_directly_to_company)
    deducted = paid_to_company if load.storage_drop else paid_to_company + collected

    return LoadFinancials(
        actual_cuft=cuft,
        rate_per_cuft=rate,
        base_revenue=base,
        contract_accessorials_total=contract,
        extra_accessorials_total=extra,
        storage_total=storage,
        total_revenue=total,
        collected_on_delivery=collected,
        paid_to_company=paid_to_company,
        company_owes=max(ZERO, round_money(total - deducted)),
    )


def receivables_by_company(loads: Iterable[Load]) -> dict[str, Decimal]:
    """Sum what each company owes across loads; loads with no company are skipped."""
    totals: dict[str, Decimal] = {}
    for load in loads:
        if not load.company_id:
            continue
        owes = calculate_load_financials(load).company_owes
        if owes > ZERO:
            totals[load.company_id] = round_money(totals.get(load.company_id, ZERO) + owes)
    return totals


class FinancialEngine(BaseService):
    """
    Recomputes and reports trip financials against the store.

    The trip record's totals are only ever written by ``recompute_trip``.
    """

    def __init__(self, store: Any, **kwargs: Any) -> None:
        super().__init__(service_name="financials", store=store, **kwargs)

    def _summarize(self, expenses: list[TripExpense]) -> ExpenseSummary:
        settings = self.config_manager.get_financial_settings()
        return summarize_expenses(
            expenses, settings.driver_funded_methods, settings.company_funded_methods
        )

    def _gather(self, ctx: RequestContext, trip_id: str) -> tuple[Trip, list[Load], list[TripExpense], Optional[Driver]]:
        trip = self.store.get_trip(ctx.owner_id, trip_id)
        loads = [load for _, load in self.store.get_trip_loads_with_loads(ctx.owner_id, trip_id)]
        expenses = self.store.list_expenses(trip_id)
        driver = None
        if trip.driver_id:
            try:
                driver = self.store.get_driver(ctx.owner_id, trip.driver_id)
            except NotFoundError:
                self.logger.warning("trip_driver_missing", trip_id=trip_id, driver_id=trip.driver_id)
        return trip, loads, expenses, driver

    def recompute_trip(self, ctx: RequestContext, trip_id: str) -> TripFinancials:
        """
        Recompute the trip's totals and write them back.

        Idempotent; safe to call after any load, expense or trip change.
        """
        trip, loads, expenses, driver = self._gather(ctx, trip_id)
        financials = compute_trip_financials(
            trip, loads, expenses, driver,
            driver_funded_methods=self.config_manager.get_financial_settings().driver_funded_methods,
        )
        self.store.update_trip(ctx.owner_id, trip_id, financials.trip_changes())
        self.logger.info(
            "trip_financials_recomputed",
            trip_id=trip_id,
            revenue_total=str(financials.revenue_total),
            driver_pay_total=str(financials.driver_pay_total),
            profit_total=str(financials.profit_total),
        )
        return financials

    def settlement_preview(self, ctx: RequestContext, trip_id: str) -> SettlementPreview:
        """
        Preview the driver's settlement for a trip.

        Args:
            ctx: Caller context
            trip_id: Trip to settle

        Returns:
            SettlementPreview with net pay and pay status
        """
        trip, loads, expenses, driver = self._gather(ctx, trip_id)
        settings = self.config_manager.get_financial_settings()
        metrics = extract_trip_metrics(trip, loads)

        compensation = trip.driver_compensation
        if compensation is None and driver is not None:
            compensation = driver.compensation()
        pay = calculate_driver_pay(compensation, metrics) if compensation is not None else None
        gross = pay.total_driver_pay if pay else ZERO

        reimbursement_items = [
            SettlementLine(
                description=e.expense_type or e.description or e.category.value,
                amount=round_money(e.amount),
                method=e.paid_by.value if e.paid_by else None,
            )
            for e in expenses
            if e.paid_by is not None and e.paid_by.value in settings.driver_funded_methods
        ]
        reimbursements = round_money(sum((i.amount for i in reimbursement_items), ZERO))

        collection_items = []
        for load in loads:
            collected = round_money(load.amount_collected_on_delivery)
            if collected <= ZERO:
                continue
            method = load.payment_method or PaymentMethod.CASH
            if method.value not in settings.collection_methods:
                continue
            collection_items.append(
                SettlementLine(description=load.display_number, amount=collected, method=method.value)
            )
        collections = round_money(sum((i.amount for i in collection_items), ZERO))

        revenue_items = [line for load in loads for line in load_revenue_items(load)]

        net = calculate_net_pay(gross, reimbursements, collections)
        preview = SettlementPreview(
            trip_id=trip.id,
            trip_number=trip.trip_number,
            driver_id=driver.id if driver else trip.driver_id,
            driver_name=driver.full_name if driver else None,
            pay=pay,
            gross_pay=gross,
            revenue_items=revenue_items,
            revenue_total=round_money(sum((line.amount for line in revenue_items), ZERO)),
            receivables_by_company=receivables_by_company(loads),
            reimbursements=reimbursements,
            reimbursement_items=reimbursement_items,
            collections=collections,
            collection_items=collection_items,
            net_pay=net,
            pay_status=pay_status_for(net),
            metrics=metrics,
            generated_at=self.now(),
        )
        preview.notes = self._settlement_notes(preview, compensation)

        self.logger.info(
            "settlement_previewed",
            trip_id=trip_id,
            gross_pay=str(gross),
            net_pay=str(net),
            pay_status=preview.pay_status,
        )
        return preview

    def _settlement_notes(
        self, preview: SettlementPreview, compensation: Optional[DriverCompensation]
    ) -> list[str]:
        """Human-readable notes for the driver."""
        notes = []
        if compensation is None:
            notes.append("No driver pay settings on file - gross pay is $0.00")
        if preview.pay_status == "owed_to_driver":
            notes.append(f"Company owes driver ${preview.net_pay:.2f}")
        elif preview.pay_status == "driver_owes":
            notes.append(f"Driver owes company ${abs(preview.net_pay):.2f}")
        else:
            notes.append("Driver and company are settled")
        if preview.reimbursements > ZERO:
            notes.append(
                f"Includes ${preview.reimbursements:.2f} reimbursement for "
                f"{len(preview.reimbursement_items)} driver-paid expense(s)"
            )
        if preview.collections > ZERO:
            notes.append(
                f"Deducts ${preview.collections:.2f} collected on delivery across "
                f"{len(preview.collection_items)} load(s)"
            )
        if preview.receivables_by_company:
            owed = round_money(sum(preview.receivables_by_company.values(), ZERO))
            notes.append(
                f"Companies owe ${owed:.2f} across {len(preview.receivables_by_company)} company(ies)"
            )
        return notes

    def calculate_trip_totals(self, ctx: RequestContext, trip_id: str) -> TripTotals:
        """Display totals: revenue, collected, receivables, expenses by funding."""
        trip, loads, expenses, _ = self._gather(ctx, trip_id)
        summary = self._summarize(expenses)

        revenue = round_money(sum((to_decimal(l.total_rate) for l in loads), ZERO))
        collected = round_money(sum((to_decimal(l.amount_collected_on_delivery) for l in loads), ZERO))
        cuft = sum((to_decimal(l.actual_cuft_loaded) for l in loads), ZERO)

        miles = ZERO
        if trip.odometer_start is not None and trip.odometer_end is not None:
            miles = max(ZERO, trip.odometer_end - trip.odometer_start)

        return TripTotals(
            total_revenue=revenue,
            total_collected=collected,
            receivables=round_money(revenue - collected),
            total_expenses=round_money(summary.company_funded + summary.driver_funded + summary.unclassified),
            company_paid_expenses=summary.company_funded,
            driver_paid_expenses=summary.driver_funded,
            unclassified_expenses=summary.unclassified,
            total_cuft=cuft,
            actual_miles=miles,
        )

    def refresh_load_financials(self, ctx: RequestContext, load_id: str) -> LoadFinancials:
        """Recalculate a load's revenue and write total_rate and company_owes back."""
        load = self.store.get_load(ctx.owner_id, load_id)
        result = calculate_load_financials(load)
        self.store.update_load(
            ctx.owner_id,
            load_id,
            {"total_rate": result.total_revenue, "company_owes": result.company_owes},
        )
        self.logger.info(
            "load_financials_refreshed",
            load_id=load_id,
            total_revenue=str(result.total_revenue),
            company_owes=str(result.company_owes),
        )
        return result
