"""
Background job infrastructure.

This package provides an in-process job system with:
- Priority queue with a bounded, semaphore-guarded worker pool
- Registry-based pluggable handlers
- Exponential-backoff retries, per-job timeouts and a dead-letter queue
- Cron scheduling with a periodic sweep
- Memory or SQL key/value persistence
"""
