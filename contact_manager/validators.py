"""Contact payload validation.

``validate_contact`` checks a raw request payload against the contact
field rules and reports every failing field in one pass.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .policies import LENIENT, PhonePolicy
from .schemas import REQUIRED_MESSAGES, RULE_ERROR, ContactCreate, ContactUpdate


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a contact payload.

    Attributes:
        values: Normalized field values. On partial validation only the
            fields present in the payload are included.
        errors: Human-readable messages, one per failing check.
    """

    values: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def error_messages(exc: ValidationError) -> List[str]:
    """Convert a pydantic ``ValidationError`` into display messages."""
    messages = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        name = str(loc[0]) if loc else "body"
        if error["type"] == RULE_ERROR:
            messages.append(error["msg"])
        elif error["type"] == "missing":
            messages.append(REQUIRED_MESSAGES.get(name, f"{name} is required"))
        elif error["type"] == "extra_forbidden":
            messages.append(f'"{name}" is not allowed')
        else:
            messages.append(f"{name}: {error['msg']}")
    return messages


def validate_contact(
    payload: Optional[Any],
    *,
    partial: bool = False,
    policy: PhonePolicy = LENIENT,
) -> ValidationResult:
    """Validate and normalize a contact payload.

    Args:
        payload: Decoded request body. ``None`` is treated as an empty object.
        partial: When true only supplied fields are checked, otherwise
            name, email and phone are all required.
        policy: Phone policy applied to the ``phone`` field.

    Returns:
        ValidationResult: Normalized values, or every field error found.
    """
    schema = ContactUpdate if partial else ContactCreate
    try:
        model = schema.model_validate(
            {} if payload is None else payload,
            context={"phone_policy": policy},
        )
    except ValidationError as exc:
        return ValidationResult(errors=error_messages(exc))
    return ValidationResult(values=model.model_dump(exclude_unset=partial))
