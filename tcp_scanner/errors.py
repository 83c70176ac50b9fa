class ConfigError(ValueError):
    """Raised for bad scan configuration, always before any socket is opened."""


class InvalidRangeError(ConfigError):
    pass


class InvalidTimeoutError(ConfigError):
    pass


class InvalidConcurrencyError(ConfigError):
    pass


class InvalidAddressError(ConfigError):
    pass


class ProbeCancelled(Exception):
    """A probe was abandoned mid-connect because the scan is being cancelled."""

    def __init__(self, port: int):
        super().__init__(f"probe of port {port} cancelled")
        self.port = port
