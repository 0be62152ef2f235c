from rest_framework import status
from rest_framework.exceptions import APIException


class EngagementError(APIException):
    """
    Base error for every engagement operation.
    `kind` lets callers branch without importing the concrete classes.
    """
    kind = "engagement_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The operation could not be completed."
    default_code = "engagement_error"

    def __str__(self):
        return str(self.detail)


class NotFound(EngagementError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class Unauthorized(EngagementError):
    kind = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to act on this resource."
    default_code = "unauthorized"


class ValidationFailed(EngagementError):
    kind = "validation"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "invalid"


class Conflict(EngagementError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The requested transition conflicts with the current state."
    default_code = "conflict"


class DependencyFailure(EngagementError):
    """
    A best-effort collaborator (notification, email, conversation, moderation)
    failed. Always caught where it is raised; never the result of an operation.
    """
    kind = "dependency"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "A downstream service failed."
    default_code = "dependency"
