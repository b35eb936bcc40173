"""JSON encoding for API responses."""

from datetime import date, datetime
from typing import Any

from flask.json.provider import DefaultJSONProvider


class ISO8601JSONProvider(DefaultJSONProvider):
    """Renders datetimes as ISO 8601 strings."""

    @staticmethod
    def default(obj: Any) -> Any:
        """Serialize datetimes with :meth:`datetime.isoformat`."""
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return DefaultJSONProvider.default(obj)
