"""Fatal conditions. Anything raised from here ends the run with exit status 1."""


class BootstrapError(RuntimeError):
    pass


class ConfigError(BootstrapError):
    pass


class WorkdirNotFound(BootstrapError):
    pass


class UnsupportedPlatform(BootstrapError):
    pass


class InstallError(BootstrapError):
    pass


class ServerStartError(BootstrapError):
    """The local file server exited for a reason other than a port conflict."""

    def __init__(self, port: int, log_text: str = ""):
        super().__init__(f"Failed to start HTTP server on port {port}.")
        self.port = port
        self.log_text = log_text


class RetriesExhausted(BootstrapError):
    def __init__(self, attempts: int):
        super().__init__(f"Failed to start HTTP server after {attempts} attempts.")
        self.attempts = attempts
