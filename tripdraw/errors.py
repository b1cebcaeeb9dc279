# tripdraw/errors.py


class ReasonCode:
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED"
    EXCEEDS_REMAINING_QUOTA = "EXCEEDS_REMAINING_QUOTA"
    CITY_REQUIRED = "CITY_REQUIRED"
    NO_PLACES_AVAILABLE = "NO_PLACES_AVAILABLE"
    REGION_NOT_FOUND = "REGION_NOT_FOUND"
    INVALID_PARAMS = "INVALID_PARAMS"


HTTP_STATUS = {
    ReasonCode.DAILY_LIMIT_EXCEEDED: 429,
    ReasonCode.NO_PLACES_AVAILABLE: 404,
}


class DrawRejected(Exception):
    """A draw refused before any state was written."""

    def __init__(self, code, message, **detail):
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail

    @property
    def http_status(self):
        return HTTP_STATUS.get(self.code, 400)

    def to_dict(self):
        body = {"success": False, "error": self.message, "code": self.code}
        for key, value in self.detail.items():
            body[_camel(key)] = value
        return body


def _camel(name):
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
