"""Classification of failed remote calls into "gone" versus fatal."""

from enum import Enum

from gitlab_reconciler.exceptions import RemoteRequestError

NOT_FOUND_STATUS = 404


class Classification(str, Enum):
    """Outcome of classifying a failed remote call."""

    NOT_FOUND = "not_found"
    FATAL = "fatal"


def classify(error: BaseException) -> Classification:
    """Classify a failure raised by a remote call.

    Only a remote 404 means the entity no longer exists. Network failures,
    every other status, and decode errors are fatal.
    """
    if isinstance(error, RemoteRequestError) and error.status_code == NOT_FOUND_STATUS:
        return Classification.NOT_FOUND
    return Classification.FATAL


def is_not_found(error: BaseException) -> bool:
    return classify(error) is Classification.NOT_FOUND
