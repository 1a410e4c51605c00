"""Error taxonomy for eventlottery."""


class EventLotteryError(Exception):
    """Base class for all eventlottery errors."""


class DataIntegrityError(EventLotteryError):
    """Raised when a document is missing a field the operation requires.

    Attributes:
        collection: Collection of the malformed document.
        document_id: Id of the malformed document.
        field: Name of the missing or null field.
    """

    def __init__(self, collection: str, document_id: str, field: str):
        self.collection = collection
        self.document_id = document_id
        self.field = field
        super().__init__(f'{collection}/{document_id} has no "{field}"')


class ConfigurationError(EventLotteryError):
    """Raised when required runtime configuration is missing."""


class DocumentExistsError(EventLotteryError):
    """Raised when creating a document whose id is already taken."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"{collection}/{document_id} already exists")


class DocumentNotFoundError(EventLotteryError):
    """Raised when updating a document that does not exist."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"{collection}/{document_id} does not exist")


class PreconditionFailedError(EventLotteryError):
    """Raised when a guarded update finds a field already holding a refused value.

    Attributes:
        collection: Collection of the guarded document.
        document_id: Id of the guarded document.
        field: Name of the field whose current value refused the write.
    """

    def __init__(self, collection: str, document_id: str, field: str):
        self.collection = collection
        self.document_id = document_id
        self.field = field
        super().__init__(f'{collection}/{document_id} refused the write on "{field}"')


class TaskSchedulingError(EventLotteryError):
    """Raised when the task scheduler rejects a task."""


class TaskNotFoundError(EventLotteryError):
    """Raised when deleting a task handle the scheduler does not know."""

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"task {handle} not found")


class BackendUnavailableError(EventLotteryError):
    """Raised when the trigger backend fails consecutively beyond threshold.

    Attributes:
        failure_count: Number of consecutive failures that triggered this error.
        last_error: The last exception message from the backend.
    """

    def __init__(self, message: str, failure_count: int = 0, last_error: str | None = None):
        self.failure_count = failure_count
        self.last_error = last_error
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.last_error:
            return f"{base} (last error: {self.last_error})"
        return base
