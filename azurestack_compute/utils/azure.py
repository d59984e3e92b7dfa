"""Helpers around the Azure SDK: error classification, pollers and sub-resources."""

import logging
from typing import Any, Iterable, List, Optional

from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from azure.core.polling import LROPoller
from azure.mgmt.compute.models import SubResource

from ..exceptions import OperationTimeoutError, wrap_azure_exception

logger = logging.getLogger(__name__)


def is_not_found(error: BaseException) -> bool:
    """Whether an SDK exception means the remote object does not exist."""
    if isinstance(error, ResourceNotFoundError):
        return True
    if isinstance(error, HttpResponseError):
        return getattr(error, "status_code", None) == 404
    return False


def get_or_none(operation: str, resource_id: str, getter, *args: Any, **kwargs: Any):
    """Call a GET operation, returning None when the object does not exist.

    Any other API failure is wrapped into AzureApiError.
    """
    try:
        return getter(*args, **kwargs)
    except HttpResponseError as e:
        if is_not_found(e):
            return None
        raise wrap_azure_exception(e, operation, resource_id) from e


def wait_for_completion(
    poller: LROPoller, timeout: float, description: str
) -> Any:
    """Block on a long-running operation.

    Args:
        poller: The poller returned by a ``begin_*`` call
        timeout: Seconds to wait before giving up
        description: What is being waited on, used in errors and logs

    Returns:
        The operation result

    Raises:
        OperationTimeoutError: If the operation did not finish in time
        AzureApiError: If the operation failed
    """
    logger.debug(f"[DEBUG] Waiting for {description}..")
    try:
        result = poller.result(timeout=timeout)
    except HttpResponseError as e:
        raise wrap_azure_exception(e, f"waiting for {description}") from e
    if not poller.done():
        raise OperationTimeoutError(
            f"timed out waiting for {description}", timeout_seconds=timeout
        )
    return result


def expand_ids_to_sub_resources(ids: Optional[Iterable[str]]) -> List[SubResource]:
    return [SubResource(id=resource_id) for resource_id in (ids or [])]


def flatten_sub_resources_to_ids(resources: Optional[Iterable[Any]]) -> List[str]:
    if not resources:
        return []
    return [r.id for r in resources if getattr(r, "id", None)]


def enum_value(value: Any) -> Any:
    """Plain value of an SDK enum member (SDK enums are ``str`` subclasses)."""
    return getattr(value, "value", value)
