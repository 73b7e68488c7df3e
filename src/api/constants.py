"""API-related constants."""

# HTTP Status Codes
HTTP_500_INTERNAL_SERVER_ERROR = 500

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
MAX_CORRELATION_ID_LENGTH = 128

# Statistics windows accepted by /validations/stats
STATS_PERIOD_DAYS = {"7days": 7, "30days": 30, "90days": 90}
DEFAULT_STATS_PERIOD = "30days"
