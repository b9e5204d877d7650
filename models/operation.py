"""Deferred write operations understood by the offline queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class OperationKind(str, Enum):
    CREATE_PROJECT = "CREATE_PROJECT"
    UPDATE_PROJECT = "UPDATE_PROJECT"
    CREATE_ATTENDANCE = "CREATE_ATTENDANCE"
    CREATE_EQUIPMENT_DISPATCH = "CREATE_EQUIPMENT_DISPATCH"
    CREATE_PURCHASE_REQUEST = "CREATE_PURCHASE_REQUEST"
    CREATE_TIMESHEET = "CREATE_TIMESHEET"
    CREATE_INCIDENT_REPORT = "CREATE_INCIDENT_REPORT"
    CREATE_VENDOR_PAYMENT = "CREATE_VENDOR_PAYMENT"
    CREATE_INVENTORY_REQUEST = "CREATE_INVENTORY_REQUEST"
    CREATE_NOTICE = "CREATE_NOTICE"

    @classmethod
    def parse(cls, value: Any) -> Optional["OperationKind"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# Convex function paths, one per kind
MUTATION_PATHS: Dict[OperationKind, str] = {
    OperationKind.CREATE_PROJECT: "projects:createProject",
    OperationKind.UPDATE_PROJECT: "projects:updateProject",
    OperationKind.CREATE_ATTENDANCE: "attendance:createAttendanceRecord",
    OperationKind.CREATE_EQUIPMENT_DISPATCH: "equipment:createEquipmentDispatch",
    OperationKind.CREATE_PURCHASE_REQUEST: "purchaseRequests:createPurchaseRequest",
    OperationKind.CREATE_TIMESHEET: "timesheets:createTimesheet",
    OperationKind.CREATE_INCIDENT_REPORT: "incidentReports:createIncidentReport",
    OperationKind.CREATE_VENDOR_PAYMENT: "vendorPayments:createVendorPayment",
    OperationKind.CREATE_INVENTORY_REQUEST: "inventory:createInventoryRequest",
    OperationKind.CREATE_NOTICE: "communications:createNotice",
}


@dataclass(frozen=True)
class Operation:
    """A tagged write payload.

    ``type`` stays a plain string so that entries written by an older client
    still load; :attr:`kind` is ``None`` for types this build does not know.
    """

    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[OperationKind]:
        return OperationKind.parse(self.type)

    @classmethod
    def of(cls, kind: OperationKind, data: Optional[Mapping[str, Any]] = None) -> "Operation":
        return cls(type=kind.value, data=dict(data or {}))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Operation":
        op_type = raw.get("type")
        if not isinstance(op_type, str) or not op_type:
            raise ValueError("operation type is missing")
        data = raw.get("data")
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError("operation data must be an object")
        return cls(type=op_type, data=dict(data))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": dict(self.data)}


__all__ = ["MUTATION_PATHS", "Operation", "OperationKind"]
