"""
Storage for the lifecycle (risk table), the correlator and the scheduler.

In-memory stores are the default; the *_real / *_sql modules are selected in
delay_cover.product when DATABASE_URL / REDIS_URL are configured.
"""
