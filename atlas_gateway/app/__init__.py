"""
Atlas OS gateway application.

Subpackages:
    adapters     upstream provider clients (RPC node provider, swap aggregator)
    auth         credential tokens, verification, lifecycle and dashboard sessions
    caching      Redis cache and typed cache accessors
    chains       static chain alias table
    persistence  asyncpg pool, migrations and stores
    ratelimit    per-credential request limiter
    swap         fee composition for swap requests
    usage        usage event models and recorder
"""
