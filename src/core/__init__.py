"""Cross-cutting functionality shared by every layer.

- **config**: Centralized configuration management with environment support
- **context**: Correlation and validation run IDs
- **exceptions**: Error hierarchy classified by ``ErrorKind``
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Loguru setup and standard logging interception
- **observability**: Distributed tracing with OpenTelemetry
"""
