"""
Setup Validation

Checks the few pieces of free-form input this core accepts from a user:
- the master password chosen at setup (and its confirmation)
- a currency code
- a conversion rate typed as text

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can show every problem at once. The
services still enforce their own hard rules (e.g. InvalidRate); this
layer exists to produce friendly messages before we get that far.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional

from ledgervault.config import get_settings
from ledgervault.models.currency import get_currency
from ledgervault.models.validation import ValidationIssue, ValidationResult


# Outside this band a rate is probably typed the wrong way round
# (e.g. 83 instead of 0.012) or with a misplaced decimal point.
UNUSUAL_RATE_LOW = Decimal("0.0001")
UNUSUAL_RATE_HIGH = Decimal("10000")


class SetupValidator:
    """Validates user input for key setup and currency changes."""

    def __init__(self, min_password_length: Optional[int] = None):
        """
        Args:
            min_password_length: Override for the configured minimum.
        """
        if min_password_length is None:
            min_password_length = get_settings().app.min_password_length
        self._min_password_length = min_password_length

    def validate_master_password(
        self,
        password: str,
        confirmation: str,
    ) -> ValidationResult:
        issues = []

        if not password:
            issues.append(ValidationIssue(
                field="password",
                issue_type="missing",
                message="Please choose a master password",
                severity="error",
            ))
        else:
            if len(password) < self._min_password_length:
                issues.append(ValidationIssue(
                    field="password",
                    issue_type="too_short",
                    message=(
                        f"Password must be at least {self._min_password_length} characters"
                    ),
                    severity="error",
                    suggested_fix="Use a longer passphrase",
                ))
            if not password.strip():
                issues.append(ValidationIssue(
                    field="password",
                    issue_type="blank",
                    message="Password cannot be only spaces",
                    severity="error",
                    suggested_fix="Include some letters, digits or symbols",
                ))
            elif password != password.strip():
                issues.append(ValidationIssue(
                    field="password",
                    issue_type="whitespace",
                    message="Password starts or ends with a space",
                    severity="warning",
                    suggested_fix="Make sure the spaces are intended; they are part of the password",
                ))
            if password != confirmation:
                issues.append(ValidationIssue(
                    field="confirmation",
                    issue_type="mismatch",
                    message="Passwords do not match",
                    severity="error",
                    suggested_fix="Type the same password in both fields",
                ))

        # There is no recovery for a forgotten master password
        issues.append(ValidationIssue(
            field="password",
            issue_type="no_recovery",
            message="If you forget this password, your encrypted data cannot be recovered",
            severity="info",
        ))

        return _result(issues)

    def validate_currency_code(self, code: str) -> ValidationResult:
        issues = []
        normalized = (code or "").strip().upper()

        if not normalized:
            issues.append(ValidationIssue(
                field="currency",
                issue_type="missing",
                message="Please choose a currency",
                severity="error",
            ))
        elif get_currency(normalized) is None:
            issues.append(ValidationIssue(
                field="currency",
                issue_type="unknown_code",
                message=f"{normalized} is not in the list of known currencies",
                severity="warning",
                suggested_fix="Amounts will be shown with the code instead of a symbol",
            ))

        return _result(issues)

    def validate_rate_text(self, text: str) -> ValidationResult:
        """Check a conversion rate as typed by the user."""
        issues = []

        try:
            rate = Decimal((text or "").strip())
        except InvalidOperation:
            rate = None

        if rate is None or not rate.is_finite() or rate <= 0:
            issues.append(ValidationIssue(
                field="rate",
                issue_type="invalid_value",
                message="Please enter a valid conversion rate greater than 0",
                severity="error",
                suggested_fix="Enter how many units of the new currency one old unit buys",
            ))
        elif rate == 1:
            issues.append(ValidationIssue(
                field="rate",
                issue_type="no_change",
                message="A rate of 1 leaves every amount unchanged",
                severity="info",
                suggested_fix="Choose 'keep as is' if you only want to change the label",
            ))
        elif rate < UNUSUAL_RATE_LOW or rate > UNUSUAL_RATE_HIGH:
            issues.append(ValidationIssue(
                field="rate",
                issue_type="unusual_value",
                message=f"A rate of {rate} is unusual",
                severity="warning",
                suggested_fix="Check the rate is not inverted",
            ))

        return _result(issues)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        errors = [i for i in result.issues if i.severity == "error"]
        warnings = [i for i in result.issues if i.severity == "warning"]

        if not errors and not warnings:
            return "✅ All checks passed!"

        lines = []

        if errors:
            lines.append("❌ Please fix the following:")
            for issue in errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for issue in warnings:
                lines.append(f"   • {issue.message}")

        if not errors:
            lines.append("")
            lines.append("You can still proceed, but please double-check.")

        return "\n".join(lines)


def _result(issues: list[ValidationIssue]) -> ValidationResult:
    return ValidationResult(
        is_valid=not any(issue.severity == "error" for issue in issues),
        issues=issues,
    )
