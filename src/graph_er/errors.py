"""Engine errors and failure typing."""


class ResolutionError(Exception):
    """Base class for engine failures."""

    error_code = "RESOLUTION_ERROR"


class ConfigError(ResolutionError):
    """Raised for invalid or missing configuration. Fatal at startup."""

    error_code = "CONFIG_ERROR"


class RecordValidationError(ResolutionError):
    """Raised for a single input row that fails validation; the batch continues."""

    error_code = "RECORD_INVALID"

    def __init__(self, row_number: int, problems: list[str]) -> None:
        self.row_number = row_number
        self.problems = list(problems)
        super().__init__(f"Invalid record (row {row_number}): {'; '.join(self.problems)}")


class BatchInputError(ResolutionError):
    """Raised when the batch input file cannot be read or parsed."""

    error_code = "INPUT_ERROR"


class PersistenceError(ResolutionError):
    """Raised when the store rejects a write for a reason other than a uniqueness conflict."""

    error_code = "PERSISTENCE_ERROR"


class BatchCancelledError(ResolutionError):
    """Raised between stages when the caller asked for cancellation."""

    error_code = "CANCELLED"

    def __init__(self) -> None:
        super().__init__("cancelled")
