"""Status normalisation helpers.

Resource collaborators expose a raw getter that returns the vendor payload,
returns None, or raises a "not found" error. The helpers here turn such a
getter into the refresh function the poller consumes, so absence always
surfaces as the NOT_FOUND state instead of an error.

Example:
    async def describe_admin_account(account_id: str) -> dict | None:
        ...

    fetch = refresh_from(
        describe_admin_account,
        state_of=lambda account: account["Status"],
    )("123456789012")
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger

from settle.core.exceptions import ResourceNotFoundError
from settle.types import NOT_FOUND, Fetch, Observation, ResourceState

log = logger.bind(component="status")

type NotFoundPredicate = Callable[[BaseException], bool]


def normalize_state(raw: object) -> ResourceState:
    """Canonicalise a raw vendor status: strip, upper-case, None/empty -> NOT_FOUND."""
    if raw is None:
        return NOT_FOUND
    state = str(raw).strip().upper().replace("-", "_").replace(" ", "_")
    return state or NOT_FOUND


def is_not_found(error: BaseException) -> bool:
    """Default classification of "resource does not exist" errors.

    Matches HTTP 404 responses (``status``/``status_code`` attributes),
    boto-style ``*NotFound*`` error codes, and ResourceNotFoundError.
    """
    if isinstance(error, ResourceNotFoundError):
        return True
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if status == 404:
        return True
    code = _error_code(error)
    return code is not None and ("NotFound" in code or code.endswith("NotFoundException"))


def _error_code(error: BaseException) -> str | None:
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        code = response.get("Error", {}).get("Code")
        return str(code) if code else None
    code = getattr(error, "code", None)
    return code if isinstance(code, str) else None


def not_found_on(*types: type[BaseException]) -> NotFoundPredicate:
    """Predicate treating the given exception classes as absence."""

    def predicate(e: BaseException) -> bool:
        return isinstance(e, types)

    return predicate


def refresh_from[P](
    getter: Callable[[str], Awaitable[P | None]],
    state_of: Callable[[P], object],
    *,
    not_found: NotFoundPredicate = is_not_found,
    normalize: bool = True,
) -> Callable[[str], Fetch]:
    """Build a refresh factory ``identifier -> fetch`` from a raw getter.

    Args:
        getter: Async function returning the resource payload, or None when
            the resource does not exist.
        state_of: Extracts the raw status value from a payload.
        not_found: Decides which getter errors mean the resource is absent.
            Any other error propagates to the poller for classification.
        normalize: Apply normalize_state to the extracted status.
    """

    def factory(identifier: str) -> Fetch:
        async def fetch() -> Observation:
            try:
                payload = await getter(identifier)
            except Exception as e:
                if not_found(e):
                    log.debug(
                        "Status lookup for {identifier} reported absence: {error}",
                        identifier=identifier,
                        error=e,
                    )
                    return Observation.not_found()
                raise

            if payload is None:
                return Observation.not_found()

            raw = state_of(payload)
            state = normalize_state(raw) if normalize else str(raw)
            return Observation(state, payload)

        return fetch

    return factory
