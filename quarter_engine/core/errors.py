"""Exception taxonomy for the round engine."""


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class DeterminismError(EngineError):
    """Randomness was requested outside a valid seeded context."""


class ModuleProcessingError(EngineError):
    """A resolver could not complete. Never escapes the resolver boundary."""


class NonFiniteValueError(ModuleProcessingError):
    """A numeric field became NaN or infinite."""

    def __init__(self, path: str, value: float):
        super().__init__(f"Non-finite value {value!r} at {path}")
        self.path = path
        self.value = value


class InvalidDecisionError(ModuleProcessingError):
    """Submitted decisions fail validation against the team state."""


class RouteLookupError(EngineError):
    """A logistics catalog lookup failed. Fatal to that calculation only."""


class RouteNotFoundError(RouteLookupError):
    """No shipping route connects the requested regions."""

    def __init__(self, origin: str, destination: str):
        super().__init__(f"No shipping route between {origin} and {destination}")
        self.origin = origin
        self.destination = destination


class ConfigurationError(EngineError):
    """Configuration or catalog data could not be loaded."""


class UnknownEventError(EngineError):
    """An injected event references an unknown type or effect target."""


class MethodUnavailableError(RouteLookupError):
    """The shipping method is not offered on the route."""

    def __init__(self, route_id: str, method: str):
        super().__init__(f"Shipping method {method} not available on route {route_id}")
        self.route_id = route_id
        self.method = method
