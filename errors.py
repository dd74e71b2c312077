"""
Error taxonomy shared by the service layer and the HTTP layer.

Services raise these; ``main`` turns them into ``{"message": ...}`` JSON
responses with the matching status code.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    status_code = 400


class InvalidIdError(BadRequestError):
    pass


class ForbiddenError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ServiceUnavailableError(ServiceError):
    status_code = 503
