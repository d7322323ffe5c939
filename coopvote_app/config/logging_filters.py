import logging

# Clients poll these every few seconds; successful polls are noise in access logs.
POLLING_PATHS: tuple[str, ...] = ("/elections/tick/",)


class PollingEndpointFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if any(path in message for path in POLLING_PATHS):
            return " 200 " not in message
        return True
