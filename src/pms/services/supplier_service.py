from __future__ import annotations

import logging
from typing import Optional

from pms.domain.errors import NotFoundError, ValidationError
from pms.domain.models import Supplier
from pms.domain.validation import clean_text, require_text

log = logging.getLogger(__name__)

OPTIONAL_FIELDS = ("contact_person", "phone", "email", "address", "ntn_cnic", "notes")


def _clean_fields(fields: dict) -> dict:
    unknown = sorted(set(fields) - {"name", *OPTIONAL_FIELDS})
    if unknown:
        raise ValidationError(f"Unknown supplier field(s): {', '.join(unknown)}.")
    out: dict = {}
    for key, value in fields.items():
        out[key] = require_text(value, "Supplier name") if key == "name" else clean_text(value)
    email = out.get("email")
    if email and "@" not in email:
        raise ValidationError("Supplier email must be a valid address.")
    return out


class SupplierService:
    def __init__(self, repo):
        self.repo = repo

    def create_supplier(self, name: str, **fields) -> Supplier:
        data = _clean_fields({"name": name, **fields})
        supplier_id = self.repo.create_supplier(data)
        log.info("supplier_created supplier_id=%s name=%s", supplier_id, data["name"])
        return self.get_supplier(supplier_id)

    def update_supplier(self, supplier_id: int, **fields) -> Supplier:
        data = _clean_fields(fields)
        if not self.repo.update_supplier(int(supplier_id), data):
            raise NotFoundError(f"Supplier #{supplier_id} not found.")
        return self.get_supplier(supplier_id)

    def remove_supplier(self, supplier_id: int) -> None:
        """Hide the supplier from pickers; existing orders keep pointing at it."""
        if not self.repo.set_supplier_active(int(supplier_id), False):
            raise NotFoundError(f"Supplier #{supplier_id} not found.")
        log.info("supplier_removed supplier_id=%s", supplier_id)

    def get_supplier(self, supplier_id: int) -> Supplier:
        supplier = self.repo.get_supplier(int(supplier_id))
        if not supplier:
            raise NotFoundError(f"Supplier #{supplier_id} not found.")
        return supplier

    def list_suppliers(self, search: Optional[str] = None, include_inactive: bool = False) -> list[Supplier]:
        return self.repo.list_suppliers(search=clean_text(search), include_inactive=include_inactive)
