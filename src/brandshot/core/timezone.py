"""UTC timezone enforcement.

Job timestamps are naive UTC (datetime.utcnow); pinning TZ keeps stale-job
cutoffs and database defaults on the same clock in every environment.
"""

import os

os.environ["TZ"] = "UTC"
