import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/coffeeshop_db")
GENERATE_SCHEMAS = os.getenv("GENERATE_SCHEMAS", "true").lower() in ("1", "true", "yes")

# Application Metadata
PROJECT_NAME = "Coffee Shop Order-Inventory Engine"
VERSION = "1.0.0"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Batch Processing
MAX_BATCH_SIZE = int(os.getenv("MAX_BATCH_SIZE", 100)) # Largest batch accepted in one request
UNKNOWN_CUSTOMER_NAME = os.getenv("UNKNOWN_CUSTOMER_NAME", "Customer {customer_id}") # Placeholder when lookup fails
