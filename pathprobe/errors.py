# pathprobe/errors.py


class PathProbeError(Exception):
    """Base class for everything this package raises on purpose."""


class ConfigurationError(PathProbeError):
    pass


class InvalidProfile(ConfigurationError):
    """Profile parameters that can never produce a meaningful session."""


class SessionUnreachable(PathProbeError):
    """Target could not be resolved or connected before the first probe."""

    def __init__(self, target, reason: str = ""):
        self.target = target
        self.reason = reason
        msg = f"session unreachable: {target}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class ProbeTransportError(PathProbeError):
    """A single probe could not be handed to the network (not a timeout)."""


class ScenarioAborted(PathProbeError):
    """
    Raised by the engine when a session fails to start. Carries the role that
    failed and the partial ScenarioResult with everything collected before it.
    """

    def __init__(self, scenario: str, role: str, partial, cause: Exception):
        self.scenario = scenario
        self.role = role
        self.partial = partial
        self.cause = cause
        super().__init__(f"scenario '{scenario}' aborted at '{role}': {cause}")


class IncomparableResults(PathProbeError):
    pass
