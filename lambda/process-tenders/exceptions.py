"""
Exceptions raised by the tender queue processor.

Only the errors that change control flow get their own type; AWS failures
surface as botocore ClientError and are inspected by error code.
"""


class ConfigurationError(Exception):
    """Required configuration is missing or invalid. Fatal at startup."""


class ClassificationError(Exception):
    """
    Raw message could not be mapped to a known tender message type.

    Raised for unknown or missing classification keys and for bodies that do
    not deserialize into the bound message type.
    """

    def __init__(self, message: str, classification_key=None):
        super().__init__(message)
        self.classification_key = classification_key


class PromptNotFoundError(Exception):
    """Prompt parameter is absent from Parameter Store or has no value."""


class DeadLetterWriteError(Exception):
    """
    Failed messages could not be written to the dead-letter queue.

    Never caught inside the processor: the invocation must fail so the
    source queue redelivers the batch.
    """
