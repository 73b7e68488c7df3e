"""HTTP API of the validation service.

- **main**: Application factory and lifespan wiring the validation services
- **routes**: Validation, status, statistics and queue endpoints
- **middleware**: Correlation IDs, access logging and exception handlers
- **schemas**: Request bodies and the error response format
"""
