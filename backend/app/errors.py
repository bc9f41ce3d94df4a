from fastapi import HTTPException, status


class MatchResultError(ValueError):
    """A submitted set score breaks the scoring rules."""


class PreconditionError(ValueError):
    """The tournament is not in a state that allows the operation."""


class TournamentStateError(PreconditionError):
    def __init__(self, message: str, current: str | None = None, target: str | None = None) -> None:
        super().__init__(message)
        self.current = current
        self.target = target


class InfeasibleScheduleError(ValueError):
    def __init__(self, message: str, unplaced: list[str] | None = None) -> None:
        super().__init__(message)
        self.unplaced = list(unplaced or [])


class ConsistencyError(ValueError):
    """The write would leave dangling team or group references."""


class ConcurrentModificationError(ConsistencyError):
    pass


class StorageUnavailableError(RuntimeError):
    """The database could not be reached or aborted the transaction. Safe to retry."""


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, StorageUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InfeasibleScheduleError):
        return HTTPException(
            status_code=422,
            detail={"message": str(exc), "unplaced": exc.unplaced},
        )
    if isinstance(exc, (PreconditionError, ConsistencyError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    raise exc
