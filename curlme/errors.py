"""curlme errors - typed failures raised by the core and handled by the CLI.

The core never prints or exits. Each failure is one of these types and the
command that triggered it decides how to present it:

    NotFoundError            soft: bin or request reference did not resolve
      StaleContextError      stored bin id no longer exists (context cleared)
      NoActiveBinError       nothing stored and nothing passed with --bin
    AmbiguousReferenceError  hard: short id matches more than one request
    MissingReferenceError    hard: no ref given outside a terminal
    AuthRequiredError        backend rejected the credential
    ApiError                 any other backend or transport failure
      TransientPollError     failure inside a tail tick (always suppressed)
    ConfigError              unreadable config document
"""


class CurlmeError(Exception):
    """Base class for every error curlme raises on purpose."""

    def __init__(self, message: str = "", hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return self.message


class NotFoundError(CurlmeError):
    pass


class StaleContextError(NotFoundError):
    def __init__(self, bin_id: str, cleared: bool = True):
        label = "Active bin" if cleared else "Bin"
        super().__init__(
            f"{label} '{bin_id}' not found.",
            hint="Set one with: curlme bin",
        )
        self.bin_id = bin_id
        self.cleared = cleared


class NoActiveBinError(NotFoundError):
    def __init__(self):
        super().__init__(
            "No active bin.",
            hint="Run: curlme init (or: curlme bin <name|id>).",
        )


class AmbiguousReferenceError(CurlmeError):
    def __init__(self, ref: str, matches: int):
        super().__init__(
            f"Short ID '{ref}' matches {matches} requests.",
            hint="Use a longer prefix.",
        )
        self.ref = ref
        self.matches = matches


class MissingReferenceError(CurlmeError):
    def __init__(self, example: str = "curlme show 1"):
        super().__init__(
            "Missing <ref>.",
            hint=f"In non-TTY mode provide a request ref, e.g. `{example}`.",
        )


class AuthRequiredError(CurlmeError):
    def __init__(self, message: str = "Authentication required."):
        super().__init__(message, hint="Run: curlme login")


class ApiError(CurlmeError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientPollError(ApiError):
    pass


class ConfigError(CurlmeError):
    pass
