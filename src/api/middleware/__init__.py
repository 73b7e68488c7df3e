"""FastAPI middleware and exception handlers.

- **RequestContextMiddleware**: Correlation IDs for requests and logs
- **RequestLoggingMiddleware**: Access log with slow request warnings
- **error_handler**: Maps exceptions to ``ErrorResponse`` payloads
"""
