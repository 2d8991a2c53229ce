"""
Two-Stage Record Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking, required fields, ranges, closed enums
- Tagged contribution settings (percentages summing to 100)
- Unknown or protected fields (extra="forbid")
- Done by the pydantic models themselves

STAGE 2 - SEMANTIC VALIDATION:
- Rules that need context the models do not have (the clock)
- Tag limits, target dates in the past

Both stages raise the domain ValidationError carrying every issue found,
before any state change. Pydantic's own exception never escapes this
module.

IMPORTANT: Validation NEVER silently fixes issues.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Callable, Optional, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from couple_finance.errors import ValidationError
from couple_finance.models.common import ValidationIssue, utc_now
from couple_finance.models.expense import ExpenseDraft, ExpensePatch
from couple_finance.models.goal import GoalDraft, GoalPatch


ModelT = TypeVar("ModelT", bound=BaseModel)

MAX_TAGS = 10
MAX_TAG_LENGTH = 50

_AMOUNT_ADAPTER = TypeAdapter(Annotated[Decimal, Field(gt=0, decimal_places=2)])

_SUGGESTED_FIXES = {
    "missing": "Provide a value for this field",
    "extra_forbidden": "Remove this field; it cannot be set here",
    "enum": "Use one of the allowed values",
    "literal_error": "Use one of the allowed values",
    "union_tag_invalid": "Use one of: equal, percentage, custom",
    "greater_than": "Use a larger value",
    "less_than_equal": "Use a smaller value",
    "decimal_max_places": "Use at most 2 decimal places",
}


def issues_from_pydantic(exc: PydanticValidationError) -> list[ValidationIssue]:
    """Translate pydantic error entries into ValidationIssues."""
    issues = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "record"
        issues.append(ValidationIssue(
            field=field,
            issue_type=error["type"],
            message=error["msg"],
            severity="error",
            suggested_fix=_SUGGESTED_FIXES.get(error["type"]),
        ))
    return issues


def _validation_error(title: str, issues: list[ValidationIssue]) -> ValidationError:
    summary = "; ".join(f"{i.field}: {i.message}" for i in issues)
    return ValidationError(f"{title}: {summary}", issues=issues)


def _raise_issues(title: str, issues: list[ValidationIssue]) -> None:
    errors = [issue for issue in issues if issue.severity == "error"]
    if errors:
        raise _validation_error(title, errors)


class RecordValidator:
    """
    Builds, patches and checks domain records.

    Services pass raw caller input (dicts or already-built drafts) through
    here and only ever see valid models or the domain ValidationError.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    # =========================================================================
    # STAGE 1: SCHEMA
    # =========================================================================

    def parse(
        self,
        model_cls: type[ModelT],
        data: Union[ModelT, dict[str, Any]],
    ) -> ModelT:
        """
        Validate caller input against a model.

        Accepts an instance (revalidated, so unchecked model_construct
        copies cannot slip through) or a plain dict.
        """
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            return model_cls.model_validate(data)
        except PydanticValidationError as e:
            raise _validation_error(
                f"Invalid {model_cls.__name__}", issues_from_pydantic(e)
            ) from e

    def build(self, model_cls: type[ModelT], **fields: Any) -> ModelT:
        """Construct a stored record from already-checked fields."""
        return self.parse(model_cls, fields)

    def apply_patch(
        self,
        record: ModelT,
        patch: BaseModel,
        exclude: Optional[set[str]] = None,
        **overrides: Any,
    ) -> ModelT:
        """
        Merge the fields a patch explicitly sets into a copy of the record.

        Patch fields named in ``exclude`` are skipped; ``overrides`` are
        record fields the caller has already worked out from the patch.
        The merged result is validated as a whole, so cross-field rules
        (e.g. a shared expense needing a percentage) still hold afterwards.
        The record passed in is not modified.
        """
        changes = patch.model_dump(exclude_unset=True, exclude=exclude)
        merged = record.model_dump()
        merged.update(changes)
        merged.update(overrides)
        try:
            return type(record).model_validate(merged)
        except PydanticValidationError as e:
            raise _validation_error(
                f"Invalid {type(record).__name__} update", issues_from_pydantic(e)
            ) from e

    def validate_amount(self, amount: Any, field: str = "amount") -> Decimal:
        """A positive money amount with at most 2 decimal places."""
        if isinstance(amount, float):
            amount = str(amount)
        try:
            return _AMOUNT_ADAPTER.validate_python(amount)
        except PydanticValidationError as e:
            issues = [
                issue.model_copy(update={"field": field})
                for issue in issues_from_pydantic(e)
            ]
            raise _validation_error(f"Invalid {field}", issues) from e

    # =========================================================================
    # STAGE 2: SEMANTIC
    # =========================================================================

    def _check_tags(self, tags: Optional[list[str]]) -> list[ValidationIssue]:
        issues = []
        if not tags:
            return issues

        if len(tags) > MAX_TAGS:
            issues.append(ValidationIssue(
                field="tags",
                issue_type="too_many",
                message=f"Maximum {MAX_TAGS} tags allowed, got {len(tags)}",
                suggested_fix="Remove some tags",
            ))
        for tag in tags:
            if len(tag) > MAX_TAG_LENGTH:
                issues.append(ValidationIssue(
                    field="tags",
                    issue_type="too_long",
                    message=f"Tag '{tag[:20]}...' exceeds {MAX_TAG_LENGTH} characters",
                    suggested_fix="Shorten the tag",
                ))
        return issues

    def _check_target_date(self, target_date: Optional[date]) -> list[ValidationIssue]:
        today = self._clock().date()
        if target_date is not None and target_date <= today:
            return [ValidationIssue(
                field="target_date",
                issue_type="past_date",
                message=f"Target date ({target_date}) must be in the future",
                suggested_fix="Pick a date after today",
            )]
        return []

    def check_expense(self, draft: Union[ExpenseDraft, ExpensePatch]) -> None:
        _raise_issues("Invalid expense", self._check_tags(draft.tags))

    def check_goal(self, draft: Union[GoalDraft, GoalPatch]) -> None:
        issues = self._check_tags(draft.tags)
        issues.extend(self._check_target_date(draft.target_date))
        _raise_issues("Invalid goal", issues)
