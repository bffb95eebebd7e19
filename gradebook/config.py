"""
Configuration settings for the gradebook and promotion engine.

These values can be overridden in Django settings by prefixing with GRADEBOOK_.
For example, to change the promotion batch size:
    GRADEBOOK_PROMOTION_BATCH_SIZE = 100

All configuration values are lazily loaded to avoid Django setup issues.
"""


def _get_setting(name, default):
    """Get a gradebook setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'GRADEBOOK_{name}', default)


# Define defaults as constants for direct use when Django settings are not needed
_DEFAULTS = {
    # Default grading thresholds
    'DEFAULT_PASS_MARK': 40.0,

    # Promotion execution
    'PROMOTION_BATCH_SIZE': 50,

    # Celery task settings
    'TASK_MAX_RETRIES': 3,
    'TASK_RETRY_DELAY': 60,  # seconds
    'TASK_SOFT_TIME_LIMIT': 25 * 60,
    'TASK_TIME_LIMIT': 30 * 60,
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


# Module-level proxy object for attribute access
_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
