"""Integrations with external systems.

- **afip**: SOAP access to WSAA, WSFEv1, WSMTXCA and Padron A4
- **cache**: Memory and persistent tiers of the validation cache
- **database**: Async SQLAlchemy models, sessions and repositories
"""
