"""
Tests for the installment planner.

Covers balances, cash in / cash out drafting, per-period inference and
the plan view with its duplicate-settlement guard.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from emi_tracker.models.ledger import (
    MAX_DESCRIPTION_LENGTH,
    EntryKind,
    Frequency,
    InstallmentTerms,
)
from emi_tracker.planning import (
    DescriptionTooLong,
    EmptySelection,
    InstallmentPlanner,
    InvalidAmount,
    InvalidFrequency,
    InvalidPeriodCount,
    ScheduleGenerator,
)


@pytest.fixture
def planner():
    return InstallmentPlanner()


def persist(drafts, start=datetime(2025, 6, 1)):
    """Turn drafts into entries the way the flows do."""
    return [d.materialize("tester", created_at=start) for d in drafts]


class TestComputeBalance:
    """Tests for balances and totals."""

    def test_empty_is_zero(self, planner, loan_account):
        """Test balance of an empty ledger."""
        assert planner.compute_balance([], loan_account) == Decimal("0")

    def test_cash_out_minus_cash_in(self, planner, make_entry, loan_account):
        """Test balance is cash out minus cash in."""
        entries = [
            make_entry(1200, kind=EntryKind.CASH_IN, account=loan_account),
            make_entry(100, account=loan_account),
            make_entry(250.50, account=loan_account),
        ]
        assert planner.compute_balance(entries, loan_account) == Decimal("-849.50")

    def test_only_counts_the_account(self, planner, make_entry, loan_account):
        """Test other accounts do not affect the balance."""
        entries = [
            make_entry(1200, kind=EntryKind.CASH_IN, account=loan_account),
            make_entry(999, account="Groceries"),
        ]
        assert planner.compute_balance(entries, loan_account) == Decimal("-1200")
        assert planner.compute_balance(entries, "Groceries") == Decimal("999")

    def test_summarize(self, planner, make_entry, loan_account):
        """Test totals in, out and balance."""
        entries = [
            make_entry(1200, kind=EntryKind.CASH_IN, account=loan_account),
            make_entry(100, account=loan_account),
        ]
        totals = planner.summarize(entries, loan_account)
        assert totals.total_in == Decimal("1200")
        assert totals.total_out == Decimal("100")
        assert totals.balance == Decimal("-1100")
        assert totals.entry_count == 2


class TestPlanCashIn:
    """Tests for drafting a cash in."""

    def test_loan_draft(self, planner, loan_account):
        """Test drafting a 12 period loan."""
        draft = planner.plan_cash_in(1200, 12, "Loan", account=loan_account, on=date(2025, 1, 15))

        assert draft.amount == Decimal("1200")
        assert draft.kind == EntryKind.CASH_IN
        assert draft.date == date(2025, 1, 15)
        assert draft.account == "Car Loan"
        assert draft.account_id == loan_account.id
        assert draft.description == "Loan (EMI 12 x 100.00)"
        assert draft.installment.period_count == 12
        assert draft.installment.per_period_amount == Decimal("100")

    def test_inferred_amount_round_trips(self, planner, loan_account):
        """Test the drafted terms are inferred back."""
        draft = planner.plan_cash_in(1200, 12, "Loan", account=loan_account)
        entries = persist([draft])
        assert planner.infer_per_period_amount(entries, loan_account) == Decimal("100")

    def test_description_alone_recovers_amount(self, planner, loan_account):
        """Even without structured terms, the annotated text is parseable."""
        draft = planner.plan_cash_in(1200, 12, "Loan", account=loan_account)
        legacy = draft.model_copy(update={"installment": None})
        entries = persist([legacy])
        assert planner.infer_per_period_amount(entries, loan_account) == Decimal("100")

    def test_empty_description(self, planner):
        """Test the note alone becomes the description."""
        draft = planner.plan_cash_in("900", 3, account="Phone")
        assert draft.description == "(EMI 3 x 300.00)"

    def test_currency_symbol_in_note(self, loan_account):
        """Test the currency symbol in the EMI note."""
        planner = InstallmentPlanner(currency_symbol="₹")
        draft = planner.plan_cash_in(600, 6, "TV", account=loan_account)
        assert draft.description == "TV (EMI 6 x ₹100.00)"

    def test_without_period_count(self, planner):
        """Test a plain cash in has no terms."""
        draft = planner.plan_cash_in(50, None, "Gift", account="Wallet")
        assert draft.installment is None
        assert draft.description == "Gift"

    def test_frequency_stored(self, planner, loan_account):
        """Test the frequency is stored on the terms."""
        draft = planner.plan_cash_in(700, 7, account=loan_account, frequency="weekly")
        assert draft.installment.frequency == Frequency.WEEKLY

    def test_defaults_to_today(self, planner, loan_account):
        """Test the draft date defaults to today."""
        draft = planner.plan_cash_in(100, 1, account=loan_account)
        assert draft.date == date.today()

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, float("nan"), True])
    def test_invalid_amount(self, planner, loan_account, amount):
        """Test invalid totals are rejected."""
        with pytest.raises(InvalidAmount):
            planner.plan_cash_in(amount, 12, account=loan_account)

    @pytest.mark.parametrize("count", [0, -1, 2.5, "x"])
    def test_invalid_period_count(self, planner, loan_account, count):
        """Test invalid period counts are rejected."""
        with pytest.raises(InvalidPeriodCount):
            planner.plan_cash_in(1200, count, account=loan_account)

    def test_invalid_frequency(self, planner, loan_account):
        """Test an unknown frequency is rejected."""
        with pytest.raises(InvalidFrequency):
            planner.plan_cash_in(1200, 12, account=loan_account, frequency="yearly")

    def test_errors_are_value_errors(self, planner, loan_account):
        """Test planning errors are ValueErrors."""
        with pytest.raises(ValueError):
            planner.plan_cash_in(-1, 12, account=loan_account)

    def test_long_description_rejected(self, planner, loan_account):
        """A description that cannot fit its EMI note is a planning error."""
        with pytest.raises(DescriptionTooLong) as excinfo:
            planner.plan_cash_in(1200, 12, "x" * 495, account=loan_account)
        assert excinfo.value.limit == MAX_DESCRIPTION_LENGTH

    def test_description_at_limit_fits(self, planner, loan_account):
        """The note is counted against the limit, not just the user text."""
        note = "(EMI 12 x 100.00)"
        text = "x" * (MAX_DESCRIPTION_LENGTH - len(note) - 1)
        draft = planner.plan_cash_in(1200, 12, text, account=loan_account)
        assert len(draft.description) == MAX_DESCRIPTION_LENGTH

    def test_long_plain_description_rejected(self, planner, loan_account):
        """Plain cash in descriptions are held to the same limit."""
        with pytest.raises(DescriptionTooLong):
            planner.plan_cash_in(50, None, "x" * 501, account=loan_account)


class TestPlanCashOut:
    """Tests for drafting settlements."""

    def test_three_slots(self, planner, loan_account, loan_cash_in):
        """Test settling three slots reduces the debt by three periods."""
        before = planner.compute_balance([loan_cash_in], loan_account)
        slots = [date(2025, 4, 1), date(2025, 2, 1), date(2025, 3, 1)]

        drafts = planner.plan_cash_out(loan_account, [loan_cash_in], slots, Decimal("100"))

        assert len(drafts) == 3
        assert all(d.amount == Decimal("100") for d in drafts)
        assert all(d.kind == EntryKind.CASH_OUT for d in drafts)
        assert [d.date for d in drafts] == sorted(slots)
        assert all(d.account_id == loan_account.id for d in drafts)

        after = planner.compute_balance([loan_cash_in] + persist(drafts), loan_account)
        assert after - before == Decimal("300")

    def test_accepts_schedule_slots(self, planner, loan_account, loan_cash_in):
        """Test ScheduleSlot selections."""
        slots = ScheduleGenerator().generate(date(2025, 2, 1), Frequency.MONTHLY, 2)
        drafts = planner.plan_cash_out(loan_account, [loan_cash_in], slots, 100)
        assert [d.date for d in drafts] == [date(2025, 2, 1), date(2025, 3, 1)]

    def test_infers_amount(self, planner, loan_account, loan_cash_in):
        """Test the amount comes from the last cash in."""
        drafts = planner.plan_cash_out(loan_account, [loan_cash_in], [date(2025, 2, 1)])
        assert drafts[0].amount == Decimal("100")

    def test_description_suffix(self, planner, loan_account, loan_cash_in):
        """Test the payment suffix on descriptions."""
        plain = planner.plan_cash_out(loan_account, [loan_cash_in], [date(2025, 2, 1)])
        noted = planner.plan_cash_out(
            loan_account, [loan_cash_in], [date(2025, 2, 1)], description="Feb"
        )
        assert plain[0].description == "(EMI Payment)"
        assert noted[0].description == "Feb (EMI Payment)"

    def test_same_date_twice_yields_one_draft(self, planner, loan_account, loan_cash_in):
        """Test a repeated date yields one draft."""
        drafts = planner.plan_cash_out(
            loan_account, [loan_cash_in], [date(2025, 2, 1), date(2025, 2, 1)], 100
        )
        assert len(drafts) == 1

    def test_empty_selection(self, planner, loan_account, loan_cash_in):
        """Test an empty selection is rejected."""
        with pytest.raises(EmptySelection):
            planner.plan_cash_out(loan_account, [loan_cash_in], [], 100)

    def test_long_description_rejected(self, planner, loan_account, loan_cash_in):
        """The payment suffix must fit as well."""
        with pytest.raises(DescriptionTooLong):
            planner.plan_cash_out(
                loan_account, [loan_cash_in], [date(2025, 2, 1)], 100, description="x" * 495
            )

    @pytest.mark.parametrize("amount", [0, -100, "ten"])
    def test_invalid_amount(self, planner, loan_account, loan_cash_in, amount):
        """Test invalid per-period amounts are rejected."""
        with pytest.raises(InvalidAmount):
            planner.plan_cash_out(loan_account, [loan_cash_in], [date(2025, 2, 1)], amount)

    def test_amount_not_recoverable(self, planner, make_entry, loan_account):
        """Test a missing amount that cannot be inferred."""
        bare = make_entry(1200, kind=EntryKind.CASH_IN, account=loan_account, description="Loan")
        with pytest.raises(InvalidAmount):
            planner.plan_cash_out(loan_account, [bare], [date(2025, 2, 1)])

    def test_does_not_filter_settled_dates(self, planner, make_entry, loan_account, loan_cash_in):
        """Drafting stays pure; the plan view and validator guard duplicates."""
        paid = make_entry(100, on=date(2025, 2, 1), account=loan_account)
        drafts = planner.plan_cash_out(
            loan_account, [loan_cash_in, paid], [date(2025, 2, 1)], 100
        )
        assert len(drafts) == 1


class TestInferPerPeriodAmount:
    """Tests for recovering the per-period amount."""

    def test_no_cash_in(self, planner, loan_account):
        """Test inference without any cash in."""
        assert planner.infer_per_period_amount([], loan_account) is None

    def test_terms_win_over_description(self, planner, make_entry, loan_account):
        """Test stored terms take priority over the description."""
        entry = make_entry(
            1200,
            kind=EntryKind.CASH_IN,
            account=loan_account,
            description="Loan (EMI 6 x 200.00)",
            installment=InstallmentTerms(period_count=12, per_period_amount=Decimal("100")),
        )
        assert planner.infer_per_period_amount([entry], loan_account) == Decimal("100")

    @pytest.mark.parametrize("description,expected", [
        ("Phone emi 4", Decimal("300")),
        ("EMI12", Decimal("100")),
        ("Loan (EMI 3 x 400.00)", Decimal("400")),
    ])
    def test_description_fallback(self, planner, make_entry, description, expected):
        """Test the EMI count parsed from legacy descriptions."""
        entry = make_entry(1200, kind=EntryKind.CASH_IN, account="Car Loan", description=description)
        assert planner.infer_per_period_amount([entry], "Car Loan") == expected

    @pytest.mark.parametrize("description", ["Loan", "EMI 0", "EMI x"])
    def test_unparseable(self, planner, make_entry, description):
        """Test descriptions without an EMI count."""
        entry = make_entry(1200, kind=EntryKind.CASH_IN, account="Car Loan", description=description)
        assert planner.infer_per_period_amount([entry], "Car Loan") is None

    def test_uses_latest_cash_in(self, planner, make_entry, loan_account):
        """Test only the latest cash in is used."""
        old = make_entry(1200, kind=EntryKind.CASH_IN, on=date(2024, 1, 1),
                         account=loan_account, description="EMI 12")
        new = make_entry(600, kind=EntryKind.CASH_IN, on=date(2025, 1, 1),
                         account=loan_account, description="EMI 3")
        assert planner.infer_per_period_amount([new, old], loan_account) == Decimal("200")
        assert planner.infer_per_period_amount([old, new], loan_account) == Decimal("200")


class TestBuildPlan:
    """Tests for the installment plan view."""

    def test_plan_for_fresh_loan(self, planner, loan_account, loan_cash_in):
        """Test the plan for a loan with no payments."""
        plan = planner.build_plan(loan_account, [loan_cash_in])

        assert plan.account == "Car Loan"
        assert plan.frequency == Frequency.MONTHLY
        assert plan.last_cash_in == loan_cash_in
        assert plan.per_period_amount == Decimal("100")
        assert len(plan.slots) == 12
        assert plan.slots[0].due_date == date(2025, 2, 1)
        assert plan.open_slots == plan.slots
        assert plan.settled_dates == []
        assert plan.outstanding == Decimal("1200")

    def test_settled_slots_not_offered(self, planner, make_entry, loan_account, loan_cash_in):
        """Test paid slots are left out of the plan."""
        paid = make_entry(100, on=date(2025, 3, 1), account=loan_account)
        plan = planner.build_plan(loan_account, [loan_cash_in, paid])

        assert date(2025, 3, 1) not in [s.due_date for s in plan.open_slots]
        assert len(plan.open_slots) == 11
        assert plan.settled_dates == [date(2025, 3, 1)]
        assert plan.outstanding == Decimal("1100")

    def test_replanning_after_settling_excludes_paid_slot(self, planner, loan_account, loan_cash_in):
        """Settling the same slot twice is prevented at the plan level."""
        first = planner.build_plan(loan_account, [loan_cash_in])
        slot = first.open_slots[0]
        paid = persist(planner.plan_cash_out(loan_account, [loan_cash_in], [slot]))

        second = planner.build_plan(loan_account, [loan_cash_in] + paid)
        assert slot.due_date not in [s.due_date for s in second.open_slots]
        assert planner.settled_dates([loan_cash_in] + paid, loan_account) == {slot.due_date}

    def test_uses_stored_frequency(self, planner, make_entry, loan_account):
        """Test the stored frequency drives the schedule."""
        weekly = make_entry(
            400,
            kind=EntryKind.CASH_IN,
            on=date(2025, 1, 1),
            account=loan_account,
            installment=InstallmentTerms(
                period_count=4,
                per_period_amount=Decimal("100"),
                frequency=Frequency.WEEKLY,
            ),
        )
        plan = planner.build_plan(loan_account, [weekly], count=4)
        assert plan.frequency == Frequency.WEEKLY
        assert [s.due_date for s in plan.slots] == [
            date(2025, 1, 8), date(2025, 1, 15), date(2025, 1, 22), date(2025, 1, 29),
        ]

    def test_explicit_frequency_overrides(self, planner, loan_account, loan_cash_in):
        """Test an explicit frequency wins."""
        plan = planner.build_plan(loan_account, [loan_cash_in], frequency="daily", count=2)
        assert plan.frequency == Frequency.DAILY
        assert plan.slots[0].due_date == date(2025, 1, 16)

    def test_no_history(self, planner, loan_account):
        """Test a plan for an account with no entries."""
        plan = planner.build_plan(loan_account, [], today=date(2025, 5, 20), count=3)
        assert plan.last_cash_in is None
        assert plan.needs_manual_amount is True
        assert plan.slots[0].due_date == date(2025, 5, 1)

    def test_manual_amount(self, planner, loan_account, loan_cash_in):
        """Test the plan flags a manual amount."""
        plan = planner.build_plan(loan_account, [loan_cash_in], per_period_amount="150")
        assert plan.per_period_amount == Decimal("150")
