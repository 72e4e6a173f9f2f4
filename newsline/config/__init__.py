"""
Configuration module for the newsline service.

Key components:
- constants: Wire event types, audio format and default timeouts shared across modules.
- settings: Environment-driven settings object passed to every component.
- logging_config: Console and rotating-file logging for the application logger.

Usage examples:
```python
from newsline.config.logging_config import configure_logging
from newsline.config.settings import Settings

logger = configure_logging()
settings = Settings.from_env()
logger.info(f"Realtime endpoint: {settings.realtime_api_url}")
```
"""
