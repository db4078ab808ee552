"""
Broker Errors
HTTP-mapped exceptions raised by the dispatcher and its collaborators
"""

from fastapi import status


class BrokerError(Exception):
    """Base broker exception carrying the HTTP status it maps to"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BadRequestError(BrokerError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(BrokerError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(BrokerError):
    status_code = status.HTTP_404_NOT_FOUND


class ServerError(BrokerError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
