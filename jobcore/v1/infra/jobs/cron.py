"""
Cron expression helpers.

Five-field expressions follow standard cron. Six-field expressions put the
seconds field first (``"*/10 * * * * *"`` fires every ten seconds). All
evaluation happens in UTC.
"""

from datetime import UTC, datetime

from croniter import croniter

from jobcore.v1.core.exceptions import ValidationError


def _normalize(expression: str) -> str:
    """Convert an expression to croniter's field order."""
    fields = expression.split()
    if len(fields) not in (5, 6):
        raise ValidationError(
            f"Invalid cron expression: {expression}",
            details={"reason": "expected 5 or 6 fields"},
        )
    if len(fields) == 6:
        # croniter expects seconds as the trailing field
        fields = fields[1:] + fields[:1]
    return " ".join(fields)


def validate_cron_expression(expression: str | None) -> str:
    """Validate an expression and return it stripped.

    Raises:
        ValidationError: if the expression is missing or malformed
    """
    if expression is None or not expression.strip():
        raise ValidationError("Cron expression is required for scheduled jobs")

    expression = expression.strip()
    normalized = _normalize(expression)
    if not croniter.is_valid(normalized):
        raise ValidationError(f"Invalid cron expression: {expression}")
    return expression


def get_next_run_time(expression: str, after: datetime | None = None) -> datetime:
    """Return the first fire time strictly after ``after`` (default: now)."""
    start = after or datetime.now(UTC)
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)
    else:
        start = start.astimezone(UTC)

    try:
        next_run = croniter(_normalize(expression.strip()), start).get_next(datetime)
    except ValueError as exc:
        raise ValidationError(f"Invalid cron expression: {expression}") from exc
    return next_run.astimezone(UTC)
