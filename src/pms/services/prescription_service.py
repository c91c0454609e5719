from __future__ import annotations

import logging
from typing import Optional

from pms.domain.errors import NotFoundError, ValidationError
from pms.domain.models import Prescription
from pms.domain.validation import (
    clean_text,
    optional_iso_date,
    page_window,
    require_non_negative_int,
    require_positive_int,
    require_text,
)

log = logging.getLogger(__name__)

TEXT_FIELDS = ("doctor_name", "medicines_prescribed", "image_path", "notes")


class PrescriptionService:
    def __init__(self, repo):
        self.repo = repo

    def _clean(self, fields: dict) -> dict:
        out: dict = {}
        for key, value in fields.items():
            if key == "patient_name":
                out[key] = require_text(value, "Patient name")
            elif key == "patient_age":
                out[key] = None if value in (None, "") else require_non_negative_int(value, "Patient age")
            elif key == "prescription_date":
                out[key] = optional_iso_date(value, "Prescription date")
            elif key == "bill_id":
                if value in (None, ""):
                    out[key] = None
                    continue
                bill_id = require_positive_int(value, "Bill id")
                if self.repo.get_bill(bill_id) is None:
                    raise NotFoundError(f"Bill #{bill_id} not found.")
                out[key] = bill_id
            elif key in TEXT_FIELDS:
                out[key] = clean_text(value)
            else:
                raise ValidationError(f"Unknown prescription field: {key}.")
        return out

    def create_prescription(self, patient_name: str, **fields) -> Prescription:
        data = self._clean({"patient_name": patient_name, **fields})
        prescription_id = self.repo.create_prescription(data)
        log.info("prescription_created prescription_id=%s bill_id=%s", prescription_id, data.get("bill_id"))
        return self.get_prescription(prescription_id)

    def update_prescription(self, prescription_id: int, **fields) -> Prescription:
        data = self._clean(fields)
        if not self.repo.update_prescription(int(prescription_id), data):
            raise NotFoundError(f"Prescription #{prescription_id} not found.")
        return self.get_prescription(prescription_id)

    def delete_prescription(self, prescription_id: int) -> Optional[str]:
        """Soft delete. Returns the stored image path so the caller can remove the file."""
        current = self.get_prescription(prescription_id)
        if not self.repo.soft_delete_prescription(current.id):
            raise NotFoundError(f"Prescription #{prescription_id} not found.")
        log.info("prescription_deleted prescription_id=%s", current.id)
        return current.image_path

    def get_prescription(self, prescription_id: int) -> Prescription:
        prescription = self.repo.get_prescription(int(prescription_id))
        if not prescription:
            raise NotFoundError(f"Prescription #{prescription_id} not found.")
        return prescription

    def list_prescriptions(
        self,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Prescription], int]:
        limit, offset = page_window(page, page_size)
        return self.repo.list_prescriptions(search=clean_text(search), limit=limit, offset=offset)
