import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", None)
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", None)
REVIEW_MODEL = os.getenv("REVIEW_MODEL", "gpt-4o-mini")
REVIEW_TIMEOUT_SECONDS = float(os.getenv("REVIEW_TIMEOUT_SECONDS", 60))

# Outbound frames buffered per connection before new ones are dropped
SESSION_QUEUE_SIZE = int(os.getenv("SESSION_QUEUE_SIZE", 256))

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
