"""ARCA Validation Service.

Validates the fiscal data of extracted documents against the Argentine tax
authority (AFIP/ARCA) web services.

Architecture Overview:
- **API Layer**: FastAPI endpoints, middleware and error responses
- **Core Layer**: Configuration, context, exceptions, logging and tracing
- **Services Layer**: Validation orchestration, retry queue and monitoring
- **Infrastructure Layer**: SOAP gateway, cache tiers and database access
"""
