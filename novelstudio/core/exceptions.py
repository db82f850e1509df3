"""Error taxonomy shared by every Novel Pipeline Studio layer."""


class NovelStudioError(Exception):
    """Base class for all errors raised by the engine."""


class UserInputError(NovelStudioError):
    """An action was blocked locally before any backend request was made."""


class StageLockedError(UserInputError):
    """The project has not reached the stage an action or transition requires."""


class ChapterNotFoundError(UserInputError):
    """A chapter position or identity no longer exists in the project."""


class ProjectNotFoundError(UserInputError):
    """No project with the requested id is in the store."""


class MilestoneNotFoundError(UserInputError):
    """No milestone with the requested id is in the plan."""


class ServiceError(NovelStudioError):
    """The completion backend failed; the current operation is aborted."""


class UnauthorizedError(ServiceError):
    """The backend rejected the configured credential."""


class RateLimitedError(ServiceError):
    """The backend throttled the request."""


class CompletionTimeoutError(ServiceError):
    """The request exceeded the configured timeout."""


class NetworkError(ServiceError):
    """The backend could not be reached."""


class EmptyResponseError(ServiceError):
    """The backend answered with no usable text."""


class ParseError(NovelStudioError):
    """A structured backend response could not be decoded or did not fit its schema."""


class ValidationError(NovelStudioError):
    """A persisted project record is corrupt and cannot be imported."""


class ConfigurationError(NovelStudioError):
    """Backend settings are missing or inconsistent."""


class ProjectBusyError(NovelStudioError):
    """Another generation action is already in flight for this project."""


class ProjectConflictError(NovelStudioError):
    """The project file was changed by another process since this one loaded it."""


class OperationCancelledError(NovelStudioError):
    """The caller cancelled a long-running operation."""
