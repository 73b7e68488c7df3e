"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000
SECONDS_PER_HOUR = 3600

# Security and redaction
REDACTED = "[REDACTED]"

# Validation verdicts
SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"

# Tolerance when comparing monetary amounts
AMOUNT_TOLERANCE = 0.01
