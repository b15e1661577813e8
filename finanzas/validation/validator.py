"""
Two-Stage Validation Pipeline

DESIGN DECISION: Form input is checked here, before anything reaches
the ledger. The aggregator trusts its input and never re-checks it.

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Number and date parsing
- Non-negative amounts, installments >= 1
- Installment fields only on card purchases

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Absurd amount detection
- Unknown card (tolerated, reported as a warning)
- Category not in the user's list

IMPORTANT: Validation NEVER silently fixes issues.
"12,5" is not turned into 12.5 and -100 is not turned into 100.
"""

import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from finanzas.config import get_settings
from finanzas.models.ledger import (
    Card,
    Categories,
    Transaction,
    TransactionType,
    UserProfile,
    ValidationIssue,
    ValidationResult,
    WishlistItem,
)


# Plain digits with an optional dot fraction: no grouping, no exponents
AMOUNT_PATTERN = re.compile(r"-?\d+(\.\d+)?")

# Whole-unit digits an amount may carry
MAX_AMOUNT_DIGITS = 15


class ValidationError(Exception):
    """Form input was rejected. Carries every issue found."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        messages = "; ".join(issue.message for issue in issues if issue.severity == "error")
        super().__init__(messages or "Invalid input")

    def to_dicts(self) -> list[dict]:
        return [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in self.issues
        ]


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_amount(value: Any, field: str, issues: list[ValidationIssue]) -> Optional[Decimal]:
    """Parse a money amount. Appends an issue and returns None when invalid."""
    if _is_blank(value):
        issues.append(_error(field, "missing", "Amount is required"))
        return None
    text = str(value).strip()
    if isinstance(value, bool) or not AMOUNT_PATTERN.fullmatch(text):
        issues.append(_error(
            field,
            "invalid_format",
            f"Amount is not a number: {value!r}",
            "Use digits and a dot as decimal separator",
        ))
        return None
    amount = Decimal(text)
    if amount < 0:
        issues.append(_error(field, "invalid_value", "Amount cannot be negative"))
        return None
    if amount.adjusted() >= MAX_AMOUNT_DIGITS:
        issues.append(_error(
            field,
            "invalid_value",
            f"Amount cannot have more than {MAX_AMOUNT_DIGITS} digits",
        ))
        return None
    return amount


def parse_date(value: Any, field: str, issues: list[ValidationIssue], required: bool = True) -> Optional[date]:
    """Parse a date or ``YYYY-MM-DD`` string."""
    if _is_blank(value):
        if required:
            issues.append(_error(field, "missing", f"{field.replace('_', ' ').capitalize()} is required"))
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        issues.append(_error(
            field,
            "invalid_format",
            f"Invalid date: {value!r}",
            "Use the YYYY-MM-DD format",
        ))
        return None


def get_user_friendly_summary(result: ValidationResult) -> str:
    """
    Generate a user-friendly summary of validation results.

    The presentation layer may translate it; this is the default wording.
    """
    if result.is_valid and not result.warnings:
        return "All checks passed."

    lines = []

    if result.has_errors:
        lines.append("Some information is missing or invalid:")
        for issue in result.issues:
            if issue.severity == "error":
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     {issue.suggested_fix}")

    if result.warnings:
        if lines:
            lines.append("")
        lines.append("Please verify the following:")
        for warning in result.warnings:
            lines.append(f"   • {warning}")

    return "\n".join(lines)


class TransactionValidator:
    """
    Validates transaction forms through a two-stage pipeline.

    The validator is built for the user's current cards and categories,
    which are only used for warnings.
    """

    def __init__(
        self,
        cards: Iterable[Card] = (),
        categories: Optional[Categories] = None,
    ):
        self._cards = {card.id: card for card in cards}
        self._categories = categories
        self._settings = get_settings().app

    def _validate_schema(
        self,
        form: Mapping[str, Any],
    ) -> tuple[dict[str, Any], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (parsed_fields, list_of_issues)
        """
        issues: list[ValidationIssue] = []
        parsed: dict[str, Any] = {}

        raw_type = form.get("type")
        try:
            if isinstance(raw_type, TransactionType):
                parsed["type"] = raw_type
            else:
                parsed["type"] = TransactionType(str(raw_type).strip().lower())
        except ValueError:
            issues.append(_error(
                "type",
                "missing" if _is_blank(raw_type) else "invalid_value",
                f"Transaction type must be one of: {', '.join(t.value for t in TransactionType)}",
            ))

        card_id = form.get("card_id")
        parsed["card_id"] = None if _is_blank(card_id) else str(card_id).strip()
        card = self._cards.get(parsed["card_id"]) if parsed["card_id"] else None

        category = form.get("category")
        if card is not None:
            # a card purchase is filed under the card's name
            parsed["category"] = card.name
        elif _is_blank(category):
            issues.append(_error("category", "missing", "Category is required"))
        else:
            parsed["category"] = str(category).strip()

        parsed["description"] = str(form.get("description") or "").strip()
        parsed["amount"] = parse_amount(form.get("amount"), "amount", issues)
        parsed["date"] = parse_date(form.get("date"), "date", issues)

        raw_installments = form.get("installments")
        parsed["installments"] = None
        if not _is_blank(raw_installments):
            try:
                if isinstance(raw_installments, bool):
                    raise ValueError(raw_installments)
                installments = int(str(raw_installments).strip())
            except ValueError:
                issues.append(_error(
                    "installments",
                    "invalid_format",
                    f"Installments must be a whole number: {raw_installments!r}",
                ))
            else:
                if installments < 1:
                    issues.append(_error("installments", "invalid_value", "Installments must be at least 1"))
                elif installments > self._settings.max_installments:
                    issues.append(_error(
                        "installments",
                        "invalid_value",
                        f"At most {self._settings.max_installments} installments are allowed",
                    ))
                else:
                    parsed["installments"] = installments

        parsed["first_payment_date"] = parse_date(
            form.get("first_payment_date"), "first_payment_date", issues, required=False
        )

        if parsed["card_id"] is None:
            if not _is_blank(raw_installments) or parsed["first_payment_date"] is not None:
                issues.append(_error(
                    "installments",
                    "not_allowed",
                    "Installments only apply to credit card purchases",
                    "Pick a card or clear the installment fields",
                ))
        elif parsed.get("type") not in (None, TransactionType.EXPENSE):
            issues.append(_error("card_id", "not_allowed", "Only expenses can be paid with a card"))

        return parsed, issues

    def _validate_semantic(
        self,
        parsed: Mapping[str, Any],
    ) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        Only produces warnings: the user may well mean it.
        """
        issues: list[ValidationIssue] = []
        today = date.today()

        max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
        if parsed["date"] > max_future:
            issues.append(_warning(
                "date",
                "future_date",
                f"Date ({parsed['date']}) is in the future",
                "Please verify the date is correct",
            ))

        if parsed["amount"] > self._settings.max_transaction_amount:
            issues.append(_warning(
                "amount",
                "suspicious_value",
                f"Amount ({parsed['amount']:,}) seems unusually high",
                "Please verify this amount is correct",
            ))

        first_payment = parsed.get("first_payment_date")
        if first_payment is not None and first_payment < parsed["date"]:
            issues.append(_warning(
                "first_payment_date",
                "inconsistent",
                "First payment is before the purchase date",
            ))

        card_id = parsed.get("card_id")
        if card_id is not None and card_id not in self._cards:
            issues.append(_warning(
                "card_id",
                "unknown_card",
                "This card does not exist; the purchase won't show in any card statement",
            ))

        if card_id is None and self._categories is not None:
            known = self._categories.for_type(parsed["type"])
            if known and parsed["category"] not in known:
                issues.append(_warning(
                    "category",
                    "unknown_category",
                    f"Category '{parsed['category']}' is not in your list",
                ))

        return issues

    def _run(self, form: Mapping[str, Any]) -> tuple[dict[str, Any], ValidationResult]:
        parsed, all_issues = self._validate_schema(form)
        schema_valid = not any(issue.severity == "error" for issue in all_issues)

        semantic_valid = False
        if schema_valid:
            all_issues.extend(self._validate_semantic(parsed))
            semantic_valid = not any(issue.severity == "error" for issue in all_issues)

        return parsed, ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[issue.message for issue in all_issues if issue.severity == "warning"],
        )

    def validate(self, form: Mapping[str, Any]) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Stage 2 only runs when stage 1 passes.
        """
        _, result = self._run(form)
        return result

    def build_transaction(self, form: Mapping[str, Any]) -> tuple[Transaction, ValidationResult]:
        """
        Validate a form and build the Transaction.

        Returns the transaction and the validation result (for warnings).

        Raises:
            ValidationError: If any error-level issue was found
        """
        parsed, result = self._run(form)
        if not result.is_valid:
            raise ValidationError(result.issues)

        try:
            return Transaction(**parsed), result
        except PydanticValidationError as e:
            raise ValidationError(_issues_from_pydantic(e)) from e

    def validate_edit(
        self,
        transaction: Transaction,
        description: Any = None,
        amount: Any = None,
        date: Any = None,
    ) -> Transaction:
        """
        Validate the editable fields and return the edited transaction.

        Raises:
            ValidationError: If an edited value is invalid
        """
        issues: list[ValidationIssue] = []
        new_amount = parse_amount(amount, "amount", issues) if amount is not None else None
        new_date = parse_date(date, "date", issues) if date is not None else None
        if issues:
            raise ValidationError(issues)

        try:
            return transaction.with_edits(
                description=None if description is None else str(description),
                amount=new_amount,
                date=new_date,
            )
        except PydanticValidationError as e:
            raise ValidationError(_issues_from_pydantic(e)) from e


def build_card(form: Mapping[str, Any]) -> Card:
    """
    Validate a card form.

    Raises:
        ValidationError: On missing name or invalid limit
    """
    issues: list[ValidationIssue] = []
    name = form.get("name")
    if _is_blank(name):
        issues.append(_error("name", "missing", "Card name is required"))
    limit = parse_amount(form.get("limit"), "limit", issues)
    if issues:
        raise ValidationError(issues)
    try:
        return Card(name=str(name), limit=limit)
    except PydanticValidationError as e:
        raise ValidationError(_issues_from_pydantic(e)) from e


def build_wishlist_item(form: Mapping[str, Any]) -> WishlistItem:
    """
    Validate a wishlist form.

    Raises:
        ValidationError: On missing name or invalid price
    """
    issues: list[ValidationIssue] = []
    name = form.get("name")
    if _is_blank(name):
        issues.append(_error("name", "missing", "Item name is required"))
    price = parse_amount(form.get("price"), "price", issues)
    if issues:
        raise ValidationError(issues)
    try:
        return WishlistItem(name=str(name), link=str(form.get("link") or ""), price=price)
    except PydanticValidationError as e:
        raise ValidationError(_issues_from_pydantic(e)) from e


def validate_profile_update(profile: UserProfile, fields: Mapping[str, Any]) -> UserProfile:
    """
    Apply profile or category changes and return the updated profile.

    Raises:
        ValidationError: On over-long fields, or an empty or blank category list
    """
    try:
        return UserProfile.model_validate({**profile.model_dump(), **fields})
    except PydanticValidationError as e:
        raise ValidationError(_issues_from_pydantic(e)) from e


def _issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    return [
        _error(
            ".".join(str(part) for part in err["loc"]) or "form",
            err["type"],
            err["msg"],
        )
        for err in error.errors()
    ]
