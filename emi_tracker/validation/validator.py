"""
Two-Stage Draft Validation

DESIGN DECISION: Drafts are checked in two distinct stages before any
of them is persisted:

STAGE 1 - SCHEMA VALIDATION:
- Non-empty batch
- Positive amounts
- Every draft targets the account being planned

STAGE 2 - SEMANTIC VALIDATION:
- Account exists and is an installment account
- Settlement dates not already settled (duplicate-settlement guard)
- No date selected twice in the same batch
- Suspicious amounts and far-future dates (warnings)
- Settling more than is outstanding (warning)

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the flow decides whether to abort.
"""

from collections import Counter
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from emi_tracker.config import get_settings
from emi_tracker.models.ledger import Account, EntryDraft, EntryKind, LedgerEntry
from emi_tracker.models.validation import ValidationIssue, ValidationResult
from emi_tracker.planning.schedule import entries_for


class EntryValidator:
    """
    Validates entry drafts against an account and its existing entries.
    """

    def __init__(self):
        self._settings = get_settings().app

    def _validate_schema(
        self,
        drafts: list[EntryDraft],
        account_name: str,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not drafts:
            issues.append(ValidationIssue(
                field="selection",
                issue_type="empty",
                message="Nothing to save",
                severity="error",
                suggested_fix="Select at least one installment",
            ))

        for draft in drafts:
            if draft.amount <= 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message=f"Amount for {draft.date} must be greater than zero",
                    severity="error",
                ))
            if draft.account != account_name:
                issues.append(ValidationIssue(
                    field="account",
                    issue_type="account_mismatch",
                    message=(
                        f"Draft for {draft.date} targets '{draft.account}', "
                        f"not '{account_name}'"
                    ),
                    severity="error",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        drafts: list[EntryDraft],
        account: Optional[Account],
        account_name: str,
        existing: list[LedgerEntry],
        require_installment: bool,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if account is None:
            issues.append(ValidationIssue(
                field="account",
                issue_type="unknown_account",
                message=f"Account '{account_name}' does not exist",
                severity="error",
                suggested_fix="Create the account first",
            ))
        elif require_installment and not account.is_installment:
            issues.append(ValidationIssue(
                field="account",
                issue_type="not_installment",
                message=f"'{account.name}' is not an installment account",
                severity="error",
            ))

        ref = account if account is not None else account_name
        account_entries = entries_for(existing, ref)
        cash_outs = [d for d in drafts if d.kind == EntryKind.CASH_OUT]

        # Duplicate-settlement guard
        settled = {
            e.date for e in account_entries if e.kind == EntryKind.CASH_OUT
        }
        for settled_date in sorted({d.date for d in cash_outs} & settled):
            issues.append(ValidationIssue(
                field="date",
                issue_type="already_settled",
                message=f"An installment on {settled_date} is already recorded",
                severity="error",
                suggested_fix="Deselect periods that were already paid",
            ))

        repeated = [d for d, n in Counter(d.date for d in cash_outs).items() if n > 1]
        for repeated_date in sorted(repeated):
            issues.append(ValidationIssue(
                field="date",
                issue_type="duplicate_in_batch",
                message=f"{repeated_date} is selected more than once",
                severity="error",
            ))

        # Sanity warnings
        horizon = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        max_amount = Decimal(str(self._settings.max_entry_amount))
        for draft in drafts:
            if draft.date > horizon:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"{draft.date} is unusually far in the future",
                    severity="warning",
                    suggested_fix="Please verify the date",
                ))
            if draft.amount > max_amount:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message=f"Amount ({draft.amount:,.2f}) seems unusually high",
                    severity="warning",
                    suggested_fix="Please verify this amount is correct",
                ))

        if cash_outs:
            balance = sum(
                (e.signed_amount for e in account_entries), Decimal("0")
            )
            outstanding = -balance
            paying = sum((d.amount for d in cash_outs), Decimal("0"))
            if paying > outstanding:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="exceeds_outstanding",
                    message=(
                        f"Settling {paying:,.2f} but only "
                        f"{max(outstanding, Decimal('0')):,.2f} is outstanding"
                    ),
                    severity="warning",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        drafts: Iterable[EntryDraft],
        account: Optional[Account],
        existing_entries: Iterable[LedgerEntry],
        account_name: Optional[str] = None,
        require_installment: bool = True,
    ) -> ValidationResult:
        """
        Run full two-stage validation.

        Args:
            drafts: Drafts about to be persisted
            account: The target account (None if it could not be found)
            existing_entries: Entries already stored for the account
            account_name: Name used when the account is missing
            require_installment: Reject non-installment accounts

        Returns:
            ValidationResult with all issues found
        """
        drafts = list(drafts)
        name = account.name if account is not None else (account_name or "")

        all_issues = []
        schema_valid, schema_issues = self._validate_schema(drafts, name)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                drafts,
                account,
                name,
                list(existing_entries),
                require_installment,
            )
            all_issues.extend(semantic_issues)

        return ValidationResult(
            account=name,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ These installments can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
