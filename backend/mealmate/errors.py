"""
Exception taxonomy for the nutrition agent.

Turn-fatal errors (ModelUnavailable, AgentTurnAborted) propagate to the
router and become a 503. ToolError and EmailDispatchError are caught where
they occur and recorded instead of raised.
"""


class MealMateError(Exception):
    """Base class for application errors."""


class ModelUnavailable(MealMateError):
    """The language model could not be reached or returned nothing usable."""


class AgentTurnAborted(MealMateError):
    """A chat turn was stopped before it completed."""


class TurnCancelled(AgentTurnAborted):
    """The caller cancelled the turn."""


class TurnDeadlineExceeded(AgentTurnAborted):
    """The turn ran past its deadline."""


class ToolError(MealMateError):
    """A single tool call failed; the rest of the turn continues."""


class EmailDispatchError(MealMateError):
    """An outbound email could not be delivered."""
