"""Tax identifier checks for parties."""
from __future__ import annotations

from stdnum import exceptions as stdnum_exceptions
from stdnum.es import nif
from stdnum.eu import vat


def is_valid_tax_id(value: str) -> bool:
    """Accept Spanish NIF/NIE/CIF numbers and EU VAT numbers."""

    if not value or not value.strip():
        return False
    for module in (nif, vat):
        try:
            module.validate(value)
        except stdnum_exceptions.ValidationError:
            continue
        return True
    return False
