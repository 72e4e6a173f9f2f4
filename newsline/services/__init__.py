"""
Services module for external HTTP integrations.

Key components:
- backend_client: Caller identity lookup by phone number and transcript storage
  (create conversation, append message, end conversation). Best-effort throughout.
- x_api: X v2 API client used by the news and account tools.

Usage examples:
```python
from newsline.services.backend_client import BackendClient

backend = BackendClient("http://localhost:8000")
identity = await backend.lookup_caller("+15551234567")
if identity is None:
    print("anonymous caller")
```
"""
