"""
Global pytest configuration for the billing test-suite.
"""

import os

# Settings are read once at import time; pin a test environment first
os.environ["ENVIRONMENT"] = "test"
os.environ["TESTING"] = "true"
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "console")
os.environ.setdefault("BILLING__SCHEDULER_ENABLED", "false")
os.environ.setdefault("BILLING__DEFAULT_CURRENCY", "GBP")
