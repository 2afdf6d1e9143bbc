"""Validation and normalisation of endpoint options."""

from __future__ import annotations

from datetime import datetime, timezone
import math
import re
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from .const import DATE_END_LAST, DATE_SECONDS_THRESHOLD, MAX_LIMIT
from .exceptions import Severity, ValidationError

if TYPE_CHECKING:
    from .classifier import ErrorClassifier

_WHITESPACE = re.compile(r"\s")

DateValue = Union[int, float, str, datetime]


def check_required_params(
    context: str,
    options: Optional[Mapping[str, Any]],
    required: Sequence[str],
) -> Optional[ValidationError]:
    """Return an error naming the first missing option, or None."""
    if not required:
        return None
    if options is None:
        return ValidationError(f"{context} 'options' not set.", Severity.CRITICAL)
    for name in required:
        if name not in options:
            return ValidationError(f"{context} '{name}' not set.", Severity.CRITICAL)
    return None


def validate_required_params(
    context: str,
    options: Optional[Mapping[str, Any]],
    required: Sequence[str],
    classifier: ErrorClassifier,
) -> bool:
    """Check that every required option is present.

    On the first missing option a single validation error is reported
    through ``classifier`` and False is returned.
    """
    error = check_required_params(context, options, required)
    if error is not None:
        classifier.report(error)
        return False
    return True


def normalize_date(value: DateValue) -> Union[int, str]:
    """Convert a date option to Unix seconds (UTC).

    Numbers at or below 1e10 are taken as seconds, larger numbers as
    milliseconds. ``datetime`` objects and ISO-8601 strings are accepted,
    naive datetimes are read as UTC. ``"last"`` is passed through.
    """
    if value == DATE_END_LAST:
        return DATE_END_LAST
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return math.floor(value.timestamp())
    if isinstance(value, str):
        stripped = value.strip()
        try:
            value = float(stripped)
        except ValueError:
            return normalize_date(
                datetime.fromisoformat(stripped.replace("Z", "+00:00"))
            )
    millis = value * 1e3 if value <= DATE_SECONDS_THRESHOLD else value
    return math.floor(millis / 1e3)


def clamp_limit(value: Union[int, str]) -> int:
    """Return ``value`` as an integer no greater than the API maximum."""
    return min(int(value), MAX_LIMIT)


def normalize_type_list(value: Union[str, Iterable[str]]) -> str:
    """Join a list of measure types and strip whitespace, lower-cased."""
    if not isinstance(value, str):
        value = ",".join(value)
    return _WHITESPACE.sub("", value).lower()


def normalize_option(
    context: str, name: str, convert: Callable[[Any], Any], value: Any
) -> Any:
    """Apply ``convert`` to option ``name``, raising ``ValidationError`` if it fails."""
    try:
        return convert(value)
    except (TypeError, ValueError) as err:
        raise ValidationError(
            f"{context} '{name}' invalid.", Severity.CRITICAL
        ) from err


def build_measure_params(
    context: str, options: Mapping[str, Any], required: Sequence[str]
) -> Dict[str, Any]:
    """Build the query of a measure request from caller options.

    Only known options are forwarded: the required ones, ``module_id``,
    ``date_begin``, ``date_end``, ``limit``, ``optimize`` and ``real_time``.
    A value that cannot be normalised raises ``ValidationError``.
    """
    params = {name: options[name] for name in required}
    params["type"] = normalize_option(
        context, "type", normalize_type_list, options["type"]
    )

    if options.get("module_id"):
        params["module_id"] = options["module_id"]
    for name in ("date_begin", "date_end"):
        if options.get(name):
            params[name] = normalize_option(
                context, name, normalize_date, options[name]
            )
    if options.get("limit"):
        params["limit"] = normalize_option(
            context, "limit", clamp_limit, options["limit"]
        )
    for flag in ("optimize", "real_time"):
        if options.get(flag) is not None:
            params[flag] = bool(options[flag])
    return params
