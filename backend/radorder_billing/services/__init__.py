"""
RadOrderPad billing service layer.

Data-access primitives the webhook handlers are built on: the ledger and its
idempotency guard, organization state, purgatory episodes, relationship
cascades, the user directory, and the billing catalog.
"""
