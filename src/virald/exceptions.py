"""Exception hierarchy for virald.

All exceptions inherit from ViraldError.

Hierarchy:
    ViraldError (base)
    ├── NotFoundError (lookup marker base)
    │   ├── VmNotFoundError          ← VM id unknown to the backend
    │   └── ProviderNotFoundError    ← provider name never registered
    ├── BackendUnavailableError      ← no active provider / tool missing
    │   └── ProviderNotFoundError
    ├── CreationFailedError          ← tool gave no parseable VM identity
    └── ExternalToolError            ← non-zero exit, OSError, SDK failure

Lookup errors (NotFoundError, BackendUnavailableError) are raised before
any backend I/O.  Mutating operations never retry: an ExternalToolError
leaves the provider registry as it was before the call.
"""

from __future__ import annotations

from typing import Any


class ViraldError(Exception):
    """Base exception for all virald errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class NotFoundError(ViraldError):
    """Base for lookups that matched nothing."""


class VmNotFoundError(NotFoundError):
    """VM id is not present in the active provider's registry.

    Attributes:
        vm_id: The id that was looked up
        provider: Name of the provider that was asked (if known)
    """

    def __init__(self, vm_id: str, provider: str | None = None):
        super().__init__(f"VM {vm_id} not found", context={"vm_id": vm_id, "provider": provider})
        self.vm_id = vm_id
        self.provider = provider


class BackendUnavailableError(ViraldError):
    """No usable backend.

    Raised when the manager has no active provider, or when a provider's
    external tool disappeared after it was probed.
    """


class ProviderNotFoundError(NotFoundError, BackendUnavailableError):
    """Provider name was never registered (failed its probe or is unknown).

    Both a lookup failure and an availability failure, so callers may
    catch either base.
    """

    def __init__(self, name: str, available: list[str] | None = None):
        super().__init__(
            f"Provider {name} not found or not available",
            context={"provider": name, "available": available or []},
        )
        self.name = name


class CreationFailedError(ViraldError):
    """Backend ran but produced no identity for the new VM.

    Attributes:
        output: Raw tool output that failed to parse
    """

    def __init__(self, message: str, output: str = "", context: dict[str, Any] | None = None):
        super().__init__(message, context)
        self.output = output


class ExternalToolError(ViraldError):
    """External tool invocation failed.

    Raised for non-zero exit codes, binaries that cannot be launched, and
    Docker SDK / filesystem errors during a mutating operation.

    Attributes:
        argv: Command line that was run (empty for SDK calls)
        returncode: Exit status, None when the process never ran
        stderr: Captured standard error
    """

    def __init__(
        self,
        message: str,
        *,
        argv: list[str] | tuple[str, ...] = (),
        returncode: int | None = None,
        stderr: str = "",
        context: dict[str, Any] | None = None,
    ):
        ctx = {**(context or {}), "argv": list(argv), "returncode": returncode, "stderr": stderr}
        super().__init__(message, ctx)
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
