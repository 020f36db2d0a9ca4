"""
Application constants.

Centralized constants for the application.
"""

from decimal import Decimal

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# Blockchain operation timeouts (in seconds)
BLOCKCHAIN_TIMEOUT = 30.0  # Standard blockchain operations (call, estimate_gas, etc.)
BLOCKCHAIN_LONG_TIMEOUT = 120.0  # Confirmation waits and log scans
BLOCKCHAIN_RPC_TIMEOUT = 30  # RPC provider HTTP timeout

# Gas
GAS_LIMIT_MULTIPLIER = Decimal("1.2")  # 20% safety margin over the live estimate

# Confirmations
DEFAULT_CONFIRMATION_BLOCKS = 1
HIGH_VALUE_CONFIRMATION_BLOCKS = 2  # Recommended where finality risk is higher
RECEIPT_POLL_INTERVAL = 2.0  # Seconds between receipt/block polls

# Event log scanning
ISSUER_LOOKBACK_BLOCKS = 10_000  # Rolling window for issuer event queries
LOG_CHUNK_SIZE = 2_000  # Blocks per eth_getLogs request (public RPC range limits)

# ========================================================================
# CERTIFICATE CONSTANTS
# ========================================================================

# Batch limits
MAX_BATCH_SIZE = 50
DEFAULT_BATCH_CONCURRENCY = 5

# Listing
DEFAULT_ISSUER_LIST_LIMIT = 50

# Free-text field limits
MAX_RECIPIENT_NAME_LENGTH = 100
MAX_COURSE_NAME_LENGTH = 200
MAX_INSTITUTION_NAME_LENGTH = 100
MAX_METADATA_URI_LENGTH = 2048

# ========================================================================
# RETRY CONSTANTS
# ========================================================================

MINT_MAX_ATTEMPTS = 2  # Resubmission only after the previous attempt is known lost
NOTIFICATION_MAX_RETRIES = 5
NOTIFICATION_RETRY_DELAY_BASE = 2  # Base delay in seconds for exponential backoff
NOTIFICATION_QUEUE_SIZE = 1000

# ========================================================================
# NETWORK DEFAULTS (Polygon Amoy)
# ========================================================================

AMOY_CHAIN_ID = 80002
AMOY_RPC_URL = "https://rpc-amoy.polygon.technology/"
AMOY_EXPLORER_URL = "https://amoy.polygonscan.com"
