"""
Error taxonomy for a decision run.

InputError   — the request itself cannot be served (missing patient, unknown
               plan). Fatal, and re-running the same request will not help.
OracleError  — the ranking oracle failed or produced nothing usable. Fatal to
               the run but retryable: the caller may simply invoke it again.
"""


class InputError(ValueError):
    """Invalid or missing input for a decision run."""


class PlanNotFoundError(InputError):
    """No formulary snapshot exists for the requested plan."""

    def __init__(self, plan_id: str):
        super().__init__(f"No formulary found for plan '{plan_id}'")
        self.plan_id = plan_id


class OracleError(RuntimeError):
    """The ranking oracle returned an empty, malformed or entirely invalid response."""

    retryable = True
