"""
Core delivery pipeline components.

This package contains:
- Payload encryption
- Bounded queues (blocking and failsafe)
- Retry strategy with exponential backoff
- Delivery ports
- Worker pool and pipeline facade
- Statistics and metrics
"""
