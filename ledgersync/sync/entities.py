"""Registry of syncable entity types.

Each entity declares the fields a client may write, the fields required on
create, an optional record-code prefix and optional derived fields.
"""

import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Callable, Optional

from .errors import UnknownEntityTypeError, ValidationFailureError
from .models import RESERVED_KEYS

# Totals are stored with four decimal places and at most this many digits
_AMOUNT_PLACES = Decimal("0.0001")
_TOTAL_PRECISION = 38


@dataclass(frozen=True)
class EntityDefinition:
    """Sync rules for one entity type."""

    name: str
    fields: frozenset
    required: frozenset = frozenset()
    code_prefix: Optional[str] = None
    defaults: dict = field(default_factory=dict)
    derive: Optional[Callable[[dict], dict]] = None

    def validate_fields(
        self,
        fields: dict,
        creating: bool = False,
        local_id: Optional[str] = None,
        server_id: Optional[int] = None,
    ) -> dict:
        """Strip server-managed keys and check the remaining payload.

        Args:
            fields: Client payload.
            creating: Enforce required fields.
            local_id: Echoed in any raised error.
            server_id: Echoed in any raised error.

        Returns:
            The payload without reserved keys.
        """
        cleaned = {k: v for k, v in fields.items() if k not in RESERVED_KEYS}

        unknown = sorted(set(cleaned) - self.fields)
        if unknown:
            raise ValidationFailureError(
                f"Unknown {self.name} field(s): {', '.join(unknown)}",
                local_id=local_id,
                server_id=server_id,
            )

        if _not_jsonb_safe(cleaned):
            raise ValidationFailureError(
                f"{self.name.capitalize()} fields must not contain NUL characters or non-finite numbers",
                local_id=local_id,
                server_id=server_id,
            )

        if creating:
            missing = sorted(
                name for name in self.required
                if cleaned.get(name) is None or cleaned.get(name) == ""
            )
            if missing:
                raise ValidationFailureError(
                    f"Missing required {self.name} field(s): {', '.join(missing)}",
                    local_id=local_id,
                    server_id=server_id,
                )

        return cleaned

    def prepare_create(self, fields: dict, now: Optional[datetime] = None) -> dict:
        """Apply defaults, a generated code and derived fields to a new payload."""
        prepared = dict(self.defaults)
        prepared.update({k: v for k, v in fields.items() if v is not None or k not in self.defaults})
        if self.code_prefix and not prepared.get("code"):
            prepared["code"] = generate_code(self.code_prefix, now=now)
        return self.apply_derived(prepared)

    def apply_derived(self, fields: dict) -> dict:
        """Recompute derived fields after a write."""
        if self.derive is None:
            return fields
        return self.derive(fields)


def generate_code(prefix: str, now: Optional[datetime] = None) -> str:
    """Generate a record code that stays unique across concurrent devices.

    Uses the UTC time plus a random suffix rather than a count of existing
    rows, which two concurrent creators would both read as the same value.
    """
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{now.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(3)}"


def _not_jsonb_safe(value: Any) -> bool:
    """True if a JSON-like value holds U+0000 or NaN/Infinity, which jsonb rejects."""
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, str):
        return "\x00" in value
    if isinstance(value, dict):
        return any(_not_jsonb_safe(k) or _not_jsonb_safe(v) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return any(_not_jsonb_safe(v) for v in value)
    return False


def _decimal_amount(name: str, value) -> Decimal:
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationFailureError(f"{name} must be a number") from None
    if not number.is_finite():
        raise ValidationFailureError(f"{name} must be a finite number")
    return number


def _collection_total(fields: dict) -> dict:
    quantity = fields.get("quantity")
    rate = fields.get("rate")
    if quantity is None or rate is None:
        return fields

    quantity = _decimal_amount("quantity", quantity)
    rate = _decimal_amount("rate", rate)
    with localcontext() as ctx:
        ctx.prec = _TOTAL_PRECISION
        try:
            total = (quantity * rate).quantize(_AMOUNT_PLACES)
        except ArithmeticError:
            raise ValidationFailureError("quantity * rate is out of range") from None

    derived = dict(fields)
    derived["total_amount"] = str(total)
    return derived


ENTITY_DEFINITIONS: dict[str, EntityDefinition] = {
    "supplier": EntityDefinition(
        name="supplier",
        fields=frozenset({
            "name", "code", "contact_person", "phone", "email", "address",
            "city", "state", "country", "postal_code", "status", "metadata",
        }),
        required=frozenset({"name"}),
        code_prefix="SUP",
        defaults={"status": "active"},
    ),
    "product": EntityDefinition(
        name="product",
        fields=frozenset({
            "name", "code", "description", "base_unit", "allowed_units",
            "status", "metadata",
        }),
        required=frozenset({"name"}),
        code_prefix="PRD",
        defaults={"status": "active"},
    ),
    "collection": EntityDefinition(
        name="collection",
        fields=frozenset({
            "supplier_id", "product_id", "collected_by", "quantity", "unit",
            "rate", "rate_id", "total_amount", "collection_date",
            "collection_time", "notes", "metadata",
        }),
        required=frozenset({"supplier_id", "product_id", "quantity", "unit"}),
        derive=_collection_total,
    ),
    "payment": EntityDefinition(
        name="payment",
        fields=frozenset({
            "supplier_id", "amount", "payment_type", "payment_date",
            "payment_method", "reference_number", "notes", "recorded_by",
            "metadata",
        }),
        required=frozenset({"supplier_id", "amount"}),
    ),
}


def get_entity_definition(entity_type: str) -> EntityDefinition:
    """Look up a registered entity type.

    Raises:
        UnknownEntityTypeError: If the type is not syncable.
    """
    try:
        return ENTITY_DEFINITIONS[entity_type]
    except KeyError:
        raise UnknownEntityTypeError(f"Unknown entity type: {entity_type}") from None


def entity_types() -> list[str]:
    """Names of all syncable entity types."""
    return sorted(ENTITY_DEFINITIONS)
