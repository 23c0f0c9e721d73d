"""Rate limit counter stores.

Two interchangeable backends sit behind ``AbstractRateLimitStore``: an
in-memory store for single-process deployments and a Redis REST store shared
by every process. The limiter picks one at startup and never mixes them.
"""
