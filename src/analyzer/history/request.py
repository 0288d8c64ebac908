"""Validation of raw history query parameters into a RequestWindow."""

import re
from datetime import datetime, timezone

from analyzer.exceptions import ValidationError
from analyzer.models import IntervalUnit, RequestWindow

INTERVAL_PATTERN = re.compile(r"^(\d{1,9})([mhd])$")


def parse_interval(interval: str) -> tuple[int, IntervalUnit]:
    """Split "15m" / "4h" / "1d" into (value, unit).

    Raises:
        ValidationError: If the string is not a positive integer plus m/h/d.
    """
    match = INTERVAL_PATTERN.match(interval)
    if not match:
        raise ValidationError(
            "Invalid interval format. Use number + m/h/d, e.g. 1h, 15m, 1d.",
            details=f"interval={interval!r}",
        )
    value = int(match.group(1))
    if value <= 0:
        raise ValidationError(
            "Interval must be a positive number of minutes, hours or days.",
            details=f"interval={interval!r}",
        )
    return value, IntervalUnit(match.group(2))


def parse_datetime_ms(value: str) -> int:
    """Parse an ISO-8601 date or date-time to epoch milliseconds.

    Naive values are taken as UTC.

    Raises:
        ValueError: If the value is not ISO-8601.
    """
    dt = datetime.fromisoformat(value.strip())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_request(
    coin: str | None,
    from_: str | None,
    to: str | None,
    interval: str | None,
) -> RequestWindow:
    """Validate raw query parameters and build a RequestWindow.

    Rules: all four parameters present and non-empty, from/to valid
    ISO-8601, from strictly before to, interval matching ^\\d+[mhd]$.

    Raises:
        ValidationError: On the first rule that fails.
    """
    params = {"coin": coin, "from": from_, "to": to, "interval": interval}
    missing = [name for name, value in params.items() if not value or not value.strip()]
    if missing:
        raise ValidationError(
            "Missing required query params: coin, from, to, interval",
            details=f"missing: {', '.join(missing)}",
        )

    try:
        from_ms = parse_datetime_ms(from_)  # type: ignore[arg-type]
        to_ms = parse_datetime_ms(to)  # type: ignore[arg-type]
    except ValueError as exc:
        raise ValidationError(
            'Invalid "from" or "to" format. Use ISO strings (e.g. 2025-07-01T20:00:00Z).',
            details=str(exc),
        ) from exc

    if from_ms >= to_ms:
        raise ValidationError('"from" must be before "to".')

    value, unit = parse_interval(interval.strip())  # type: ignore[union-attr]

    return RequestWindow(
        coin=coin.strip(),  # type: ignore[union-attr]
        from_ms=from_ms,
        to_ms=to_ms,
        interval_value=value,
        interval_unit=unit,
    )
