import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/cafe_db")

# Application Metadata
PROJECT_NAME = "Cafe Inventory Consistency Engine"
VERSION = "1.0.0"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Deduction Retry Queue Configuration
QUEUE_POLL_INTERVAL = int(os.getenv("QUEUE_POLL_INTERVAL", 10)) # Poller checks for pending deductions every N seconds
QUEUE_MAX_ATTEMPTS = int(os.getenv("QUEUE_MAX_ATTEMPTS", 3)) # Attempts before an item is marked failed
QUEUE_BATCH_SIZE = int(os.getenv("QUEUE_BATCH_SIZE", 10)) # How many items to claim per poll
QUEUE_STALE_TIMEOUT_SECONDS = int(os.getenv("QUEUE_STALE_TIMEOUT_SECONDS", 300)) # 'processing' rows older than this are reclaimed
QUEUE_RETENTION_DAYS = int(os.getenv("QUEUE_RETENTION_DAYS", 7)) # Completed items kept this long

# Recipe resolution
STRICT_RECIPES = os.getenv("STRICT_RECIPES", "false").lower() in ("1", "true", "yes")
FALLBACK_RECIPE_INGREDIENT = os.getenv("FALLBACK_RECIPE_INGREDIENT", "sugar")
FALLBACK_RECIPE_GRAMS = float(os.getenv("FALLBACK_RECIPE_GRAMS", 10.0))

# Low-stock notification throttling
NOTIFICATION_TIMEZONE = os.getenv("NOTIFICATION_TIMEZONE", "Asia/Manila")
NOTIFICATION_HOUR = int(os.getenv("NOTIFICATION_HOUR", 8))
NOTIFICATION_MINUTE = int(os.getenv("NOTIFICATION_MINUTE", 0))
NOTIFICATION_WINDOW_MINUTES = int(os.getenv("NOTIFICATION_WINDOW_MINUTES", 60))
CRITICAL_INTERVAL_HOURS = int(os.getenv("CRITICAL_INTERVAL_HOURS", 24))
LOW_STOCK_INTERVAL_DAYS = int(os.getenv("LOW_STOCK_INTERVAL_DAYS", 3))

# Outbox relay (real-time events for the socket layer)
OUTBOX_POLL_INTERVAL = int(os.getenv("OUTBOX_POLL_INTERVAL", 2)) # Relay checks for unpublished events every N seconds
OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", 5)) # Publish attempts before an event is left alone
OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", 50))
OUTBOX_RETENTION_DAYS = int(os.getenv("OUTBOX_RETENTION_DAYS", 2)) # Published events kept this long
