"""Error kinds surfaced to callers of the administration layer."""


class AdminError(Exception):
    """Base class for errors raised by mysql_admin itself."""


class DatabaseAlreadyExists(AdminError):
    def __init__(self, name: str):
        super().__init__(f"Database '{name}' already exists")
        self.name = name


class UserAlreadyExists(AdminError):
    def __init__(self, identity: str):
        super().__init__(f"User {identity} already exists")
        self.identity = identity


class ExecutionTimeout(AdminError):
    def __init__(self, timeout: float):
        super().__init__(f"Execution timed out after {timeout}s")
        self.timeout = timeout


class DumpToolError(AdminError):
    """An external dump/restore tool exited with an error.

    The message is the tool's own stderr output.
    """

    def __init__(self, tool: str, returncode: int, message: str):
        super().__init__(message or f"{tool} exited with status {returncode}")
        self.tool = tool
        self.returncode = returncode
