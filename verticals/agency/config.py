"""Agency vertical configuration.

Loads TrackerConfig from the environment once at import time.
"""

from patterns.domain_config import TrackerConfig

# Process-wide configuration instance
config = TrackerConfig.from_env()
