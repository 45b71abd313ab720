class InsureHubError(Exception):
    """Base class for errors raised by the pricing/lifecycle engine."""


class IneligibleRisk(InsureHubError):
    """The buyer's risk profile is not insurable under the policy (e.g. smoker on a non-smoker plan)."""

    def __init__(self, policy_id: int | None, reason: str):
        self.policy_id = policy_id
        self.reason = reason
        super().__init__(f"Policy {policy_id} cannot cover this buyer: {reason}")


class InvalidFactorConfiguration(InsureHubError):
    """A policy's factor table is missing a required value or holds a negative one."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid factor configuration: " + "; ".join(problems))


class NotificationDispatchFailure(InsureHubError):
    pass


class DocumentRenderFailure(InsureHubError):
    pass


class NotFound(InsureHubError):
    pass


class InvalidTransition(InsureHubError):
    """A state-machine transition was requested from a state that does not allow it."""
