"""Power state helpers for operations which need a Virtual Machine stopped.

Resizing a VM, changing its OS disk caching, or resizing or re-tiering an
attached managed disk all require the machine to be deallocated first.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from azure.core.exceptions import HttpResponseError

from ...exceptions import wrap_azure_exception
from ...locks import by_name
from ...resource_ids import VirtualMachineId
from ...utils.azure import wait_for_completion

logger = logging.getLogger(__name__)

VIRTUAL_MACHINE_RESOURCE_NAME = "azurestack_virtual_machine"

POWER_STATE_PREFIX = "powerstate/"


def power_state(instance_view: Any) -> Optional[str]:
    """Return the lower-cased power state (``running``, ``stopped``...) or None.

    Statuses also carry the provisioning state, which is ignored here.
    """
    for status in getattr(instance_view, "statuses", None) or []:
        code = getattr(status, "code", None)
        if not code:
            continue
        state = code.lower()
        if state.startswith(POWER_STATE_PREFIX):
            return state[len(POWER_STATE_PREFIX):]
    return None


def virtual_machine_should_be_started(instance_view: Any) -> bool:
    """Whether the VM should be started again after maintenance.

    Virtual Machines which are already stopped can be updated but will not
    be started.
    """
    return power_state(instance_view) == "running"


@contextmanager
def deallocated_virtual_machine(
    compute_client: Any,
    id: VirtualMachineId,
    timeout: float,
    skip_shutdown: bool = False,
) -> Iterator[None]:
    """Hold the VM lock and keep the VM deallocated for the duration of the block.

    The VM is powered off if running, deallocated unless it already is, and
    started again afterwards only if it was running before. If the block
    raises, the VM is left deallocated.

    Args:
        compute_client: ComputeManagementClient
        id: The Virtual Machine to stop
        timeout: Seconds to wait for each power operation
        skip_shutdown: Power off without a graceful guest shutdown
    """
    client = compute_client.virtual_machines

    with by_name(id.name, VIRTUAL_MACHINE_RESOURCE_NAME):
        try:
            instance_view = client.instance_view(id.resource_group, id.name)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "retrieving InstanceView for", str(id)) from e

        state = power_state(instance_view)
        should_turn_back_on = state == "running"
        should_shut_down = state not in ("stopped", "stopping", "deallocated", "deallocating")
        should_deallocate = state not in ("deallocated", "deallocating")

        if should_shut_down:
            logger.debug(f"[DEBUG] Shutting Down {id}..")
            try:
                poller = client.begin_power_off(
                    id.resource_group, id.name, skip_shutdown=skip_shutdown
                )
            except HttpResponseError as e:
                raise wrap_azure_exception(e, "sending Power Off to", str(id)) from e
            wait_for_completion(poller, timeout, f"Power Off of {id}")
            logger.debug(f"[DEBUG] Shut Down {id}.")

        if should_deallocate:
            logger.debug(f"[DEBUG] Deallocating {id}..")
            try:
                poller = client.begin_deallocate(id.resource_group, id.name)
            except HttpResponseError as e:
                raise wrap_azure_exception(e, "deallocating", str(id)) from e
            wait_for_completion(poller, timeout, f"Deallocation of {id}")
            logger.debug(f"[DEBUG] Deallocated {id}.")

        yield

        if should_turn_back_on:
            logger.debug(f"[DEBUG] Starting {id}..")
            try:
                poller = client.begin_start(id.resource_group, id.name)
            except HttpResponseError as e:
                raise wrap_azure_exception(e, "starting", str(id)) from e
            wait_for_completion(poller, timeout, f"start of {id}")
            logger.debug(f"[DEBUG] Started {id}.")
