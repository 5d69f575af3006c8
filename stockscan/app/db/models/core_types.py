import enum

class Role(str, enum.Enum):
    admin = "admin"
    manager = "manager"
    operator = "operator"

class OrderKind(str, enum.Enum):
    inbound = "INBOUND"    # purchase orders -> inventory entries
    outbound = "OUTBOUND"  # delivery orders -> inventory exits

class OrderStatus(str, enum.Enum):
    pending = "PENDING"
    partial = "PARTIAL"
    completed = "COMPLETED"
    cancelled = "CANCELLED"

class EntryType(str, enum.Enum):
    po_entry = "PO_ENTRY"
    entry = "ENTRY"
    initial_load = "INITIAL_LOAD"

class CommitState(str, enum.Enum):
    idle = "IDLE"
    committing = "COMMITTING"
    committed = "COMMITTED"
    partial = "PARTIAL"
    failed = "FAILED"


# Commandes sur lesquelles on peut encore scanner
OPEN_ORDER_STATUSES = {
    OrderStatus.pending,
    OrderStatus.partial,
}
