# errors.py
#
# Error taxonomy for board assembly.
# - FetchFailure / InsufficientClues: recovered per slot by the assembler
# - SamplingExhausted / RetryLimitExceeded: fatal, abort the run
# - StaleRun: a superseded run, dropped quietly by the session


class BoardError(Exception):
    """Base class for everything the board pipeline raises on purpose."""


class FetchFailure(BoardError):
    def __init__(self, category_id, reason):
        super().__init__(f"category {category_id}: {reason}")
        self.category_id = category_id
        self.reason = reason


class InsufficientClues(BoardError):
    pass


class SamplingExhausted(BoardError):
    pass


class RetryLimitExceeded(BoardError):
    pass


class InvalidTransition(BoardError):
    pass


class StaleRun(BoardError):
    pass


FATAL_ERRORS = (SamplingExhausted, RetryLimitExceeded)
