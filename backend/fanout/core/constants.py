"""
Centralized constants for notifications and dispatch (Encapsulate What Changes).

Settings in fanout.config default to these; change literals here instead of scattering them
across routes and services.
"""

# Sender label used when a send omits one (matches the admin UI default)
DEFAULT_SENDER_LABEL = "System"

# Recipient used when a request carries no X-Recipient-Id / ?recipient_id=
DEFAULT_RECIPIENT_ID = "default"

# Transports a subscription may use (Subscription.transport)
TRANSPORT_WEBPUSH = "webpush"
TRANSPORT_MOBILE_TOKEN = "mobile-token"
TRANSPORT_RELAY_SERVICE = "relay-service"
TRANSPORTS = (TRANSPORT_WEBPUSH, TRANSPORT_MOBILE_TOKEN, TRANSPORT_RELAY_SERVICE)

# Dispatch: background jobs run on a small shared pool; each job fans sends out on its own bounded pool
DEFAULT_DISPATCH_JOB_WORKERS = 2
DEFAULT_DISPATCH_MAX_CONCURRENT_SENDS = 8
DEFAULT_SEND_TIMEOUT_SECONDS = 10.0
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 60.0
# Most recent dispatch reports kept in memory for GET /notifications/{id}/dispatch
DEFAULT_DISPATCH_REPORT_HISTORY = 200

# Feed paging: hard caps so response size stays bounded
FEED_DEFAULT_LIMIT = 50
FEED_MAX_LIMIT = 200
# Max ids accepted by one mark-read call
MARK_READ_MAX_IDS = 500

# Column widths; longer input is a 400, not a database error
TITLE_MAX_LENGTH = 256
SENDER_LABEL_MAX_LENGTH = 256
RECIPIENT_ID_MAX_LENGTH = 64
