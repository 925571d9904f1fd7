import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Outbound buffer per room member, and what to do when a slow peer fills it
MEMBER_QUEUE_SIZE = int(os.getenv("MEMBER_QUEUE_SIZE", 256))
QUEUE_OVERFLOW_POLICY = os.getenv("QUEUE_OVERFLOW_POLICY", "drop-newest")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

WS_CLOSE_POLICY_VIOLATION = 1008
