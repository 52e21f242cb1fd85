"""
Contracts (data models).

This folder defines the request/response shapes for external integrations:
- Outbound rating / status requests
- Oracle fulfillment payloads and their normalization
- Treasury, claims ledger and oracle dispatcher interfaces

Both mock and real HTTP clients should use these contracts.
"""
