"""settle - wait for cloud resources to converge and keep their tags in line.

Example:

    from settle import NOT_FOUND, PollSpec, Waiter, refresh_from, update_tags

    wait_subscription_deleted = Waiter(
        PollSpec(pending={"DELETING"}, target={NOT_FOUND, "INCOMPLETE"}, timeout=180,
                 description="standards subscription"),
        refresh=refresh_from(describe_subscription, lambda s: s["StandardsStatus"]),
    )

    await client.delete_subscription(arn)
    await wait_subscription_deleted(arn)

    await update_tags(tagging_client, arn, {"team": "security"})
"""

# Batch waits
from settle.batch import wait_all

# Configuration
from settle.config import load_config, resolve_poll_spec, resolve_retry_policy, resolve_tag_policy

# Exceptions
from settle.core.exceptions import (
    ConfigurationError,
    FetchFailedError,
    PollCancelledError,
    PollOutcome,
    ResourceNotFoundError,
    SettleError,
    TagOperationError,
    UnexpectedStateError,
    WaitError,
    WaitTimeoutError,
)

# Logging
from settle.observability import LogConfig, setup_logging, teardown_logging

# Collaborator protocols
from settle.protocols import StatusSource, TaggingClient

# Transient error handling
from settle.retry import RetryPolicy, is_transient

# Status normalisation
from settle.status import is_not_found, normalize_state, not_found_on, refresh_from

# Tag reconciliation
from settle.tags import (
    IgnoreConfig,
    TagDiff,
    TagSet,
    diff_tags,
    reconcile_tags,
    reserved_prefix,
    update_tags,
)

# Types
from settle.types import NOT_FOUND, Observation, PollSpec, ResourceState

# Convergence poller
from settle.wait import Waiter, poll, wait_until_absent, wait_until_present

__all__ = [
    "NOT_FOUND",
    "ConfigurationError",
    "FetchFailedError",
    "IgnoreConfig",
    "LogConfig",
    "Observation",
    "PollCancelledError",
    "PollOutcome",
    "PollSpec",
    "ResourceNotFoundError",
    "ResourceState",
    "RetryPolicy",
    "SettleError",
    "StatusSource",
    "TagDiff",
    "TagOperationError",
    "TagSet",
    "TaggingClient",
    "UnexpectedStateError",
    "WaitError",
    "WaitTimeoutError",
    "Waiter",
    "diff_tags",
    "is_not_found",
    "is_transient",
    "load_config",
    "normalize_state",
    "not_found_on",
    "poll",
    "reconcile_tags",
    "refresh_from",
    "reserved_prefix",
    "resolve_poll_spec",
    "resolve_retry_policy",
    "resolve_tag_policy",
    "setup_logging",
    "teardown_logging",
    "update_tags",
    "wait_all",
    "wait_until_absent",
    "wait_until_present",
]
