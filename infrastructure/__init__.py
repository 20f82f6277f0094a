"""Infrastructure layer — observability for the live mixer bridge.

Modules:
    metrics         Prometheus metrics registry.
    logging_config  Root logger setup (stderr, millisecond timestamps).
"""
