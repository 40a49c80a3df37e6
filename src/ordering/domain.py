"""Ordering bounded context — Order Ledger and Payment Reconciliation.

Holds the authoritative order record, materializes deferred orders once the
payment processor reports success, and reconciles order payment state with the
processor's asynchronous event stream.
"""

from protean.domain import Domain

ordering = Domain(name="ordering")
