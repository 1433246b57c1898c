"""deploykeeper - lifecycle supervisor for local deployments.

Starts, stops, restarts and updates a workload that runs either as a single
OS process or as a set of docker compose services.
"""

__version__ = "0.1.0"
