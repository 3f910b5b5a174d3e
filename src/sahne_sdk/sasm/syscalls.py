"""
Sahne64 Kernel System Call Definitions
======================================

Fixed numbering of the Sahne64 microkernel services. The numbers are part
of the runtime ABI and must not change.

System Call Convention
----------------------
A kernel-facing statement lowers to a dispatch triple:

    SYS_CALL 1          ; service number
    ARG 1024            ; one line per input, in declaration order
    RES handle1         ; symbol receiving the result, if any

| Number | Name            | Inputs                 | Result    |
|--------|-----------------|------------------------|-----------|
| 1      | ALLOCATE        | size                   | handle    |
| 2      | RELEASE         | handle                 |           |
| 3      | SPAWN           | procedure, [priority]  |           |
| 4      | EXIT            | [code]                 |           |
| 5      | SLEEP           | duration               |           |
| 6      | YIELD           |                        |           |
| 7      | ACQUIRE         | name                   | handle    |
| 8      | CTRL            | handle, command        |           |
| 9      | SEND            | handle, message        |           |
| 10     | RECV            | handle                 | buffer    |
| 11     | GET_TASK_ID     |                        | task id   |
| 12     | GET_CORE_ID     |                        | core id   |
| 13     | GET_TOTAL_CORES |                        | count     |
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from sahne_sdk.sasm.ast import (
    Statement,
    AllocateMemory,
    ReleaseMemory,
    SpawnTask,
    ExitTask,
    SleepTask,
    YieldTask,
    AcquireResource,
    ControlResource,
    SendMessage,
    ReceiveMessage,
    GetTaskId,
    GetCoreId,
    GetTotalCores,
)


# =============================================================================
# System Call Categories
# =============================================================================

class CallCategory(Enum):
    """Functional area of a kernel service."""
    MEMORY = auto()      # allocation and release
    TASK = auto()        # task lifecycle and scheduling
    RESOURCE = auto()    # named resources and their control
    MESSAGE = auto()     # inter-task messaging
    IDENTITY = auto()    # task and core identity queries


# =============================================================================
# System Call Definition
# =============================================================================

@dataclass(frozen=True)
class Parameter:
    """
    Input of a system call.

    Attributes:
        name: Parameter name, also the statement field holding the value
        description: What the parameter represents
        optional: Whether the statement may omit it
    """
    name: str
    description: str
    optional: bool = False

    def __str__(self) -> str:
        opt = " (optional)" if self.optional else ""
        return f"{self.name}{opt}"


@dataclass(frozen=True)
class SystemCall:
    """
    Definition of a Sahne64 kernel service.

    Attributes:
        name: Statement keyword that invokes the service
        number: Fixed service number
        description: Brief description
        category: Functional category
        node_type: AST statement class lowered to this call
        inputs: Parameters, one ARG line each when present
        result: Description of the RES value, None if the call returns nothing
        target: Statement field naming the RES target
    """
    name: str
    number: int
    description: str
    category: CallCategory
    node_type: type
    inputs: tuple[Parameter, ...] = field(default_factory=tuple)
    result: Optional[str] = None
    target: Optional[str] = None

    @property
    def has_result(self) -> bool:
        return self.result is not None

    def format_signature(self) -> str:
        """
        Format the call as a one-line summary.

        Returns:
            Text like "7 ACQUIRE(name) -> handle"
        """
        args = ", ".join(str(p) for p in self.inputs)
        ret = f" -> {self.result}" if self.result else ""
        return f"{self.number} {self.name}({args}){ret}"


# =============================================================================
# System Call Table
# =============================================================================

SYSTEM_CALLS: tuple[SystemCall, ...] = (
    SystemCall(
        name="ALLOCATE",
        number=1,
        description="Allocate a memory region",
        category=CallCategory.MEMORY,
        node_type=AllocateMemory,
        inputs=(Parameter("size", "region size in bytes"),),
        result="handle",
        target="handle",
    ),
    SystemCall(
        name="RELEASE",
        number=2,
        description="Release a memory region",
        category=CallCategory.MEMORY,
        node_type=ReleaseMemory,
        inputs=(Parameter("handle", "region handle"),),
    ),
    SystemCall(
        name="SPAWN",
        number=3,
        description="Start a task running a procedure",
        category=CallCategory.TASK,
        node_type=SpawnTask,
        inputs=(
            Parameter("procedure", "entry procedure"),
            Parameter("priority", "scheduling priority", optional=True),
        ),
    ),
    SystemCall(
        name="EXIT",
        number=4,
        description="Terminate the current task",
        category=CallCategory.TASK,
        node_type=ExitTask,
        inputs=(Parameter("code", "exit code", optional=True),),
    ),
    SystemCall(
        name="SLEEP",
        number=5,
        description="Suspend the current task",
        category=CallCategory.TASK,
        node_type=SleepTask,
        inputs=(Parameter("duration", "sleep duration"),),
    ),
    SystemCall(
        name="YIELD",
        number=6,
        description="Give up the rest of the time slice",
        category=CallCategory.TASK,
        node_type=YieldTask,
    ),
    SystemCall(
        name="ACQUIRE",
        number=7,
        description="Acquire a named resource",
        category=CallCategory.RESOURCE,
        node_type=AcquireResource,
        inputs=(Parameter("name", "resource name"),),
        result="handle",
        target="handle",
    ),
    SystemCall(
        name="CTRL",
        number=8,
        description="Send a control command to a resource",
        category=CallCategory.RESOURCE,
        node_type=ControlResource,
        inputs=(
            Parameter("handle", "resource handle"),
            Parameter("command", "control command"),
        ),
    ),
    SystemCall(
        name="SEND",
        number=9,
        description="Send a message",
        category=CallCategory.MESSAGE,
        node_type=SendMessage,
        inputs=(
            Parameter("handle", "channel handle"),
            Parameter("message", "message value"),
        ),
    ),
    SystemCall(
        name="RECV",
        number=10,
        description="Receive a message",
        category=CallCategory.MESSAGE,
        node_type=ReceiveMessage,
        inputs=(Parameter("handle", "channel handle"),),
        result="buffer",
        target="buffer",
    ),
    SystemCall(
        name="GET_TASK_ID",
        number=11,
        description="Query the current task id",
        category=CallCategory.IDENTITY,
        node_type=GetTaskId,
        result="task id",
        target="target",
    ),
    SystemCall(
        name="GET_CORE_ID",
        number=12,
        description="Query the current core id",
        category=CallCategory.IDENTITY,
        node_type=GetCoreId,
        result="core id",
        target="target",
    ),
    SystemCall(
        name="GET_TOTAL_CORES",
        number=13,
        description="Query the number of cores",
        category=CallCategory.IDENTITY,
        node_type=GetTotalCores,
        result="core count",
        target="target",
    ),
)


# =============================================================================
# Lookup Functions
# =============================================================================

_CALLS_BY_NAME: dict[str, SystemCall] = {
    call.name: call for call in SYSTEM_CALLS
}

_CALLS_BY_NUMBER: dict[int, SystemCall] = {
    call.number: call for call in SYSTEM_CALLS
}

_CALLS_BY_NODE: dict[type, SystemCall] = {
    call.node_type: call for call in SYSTEM_CALLS
}


def get_syscall(name: str) -> Optional[SystemCall]:
    """
    Look up a system call by keyword.

    Args:
        name: Statement keyword (e.g., "ALLOCATE"), case-insensitive

    Returns:
        SystemCall if found, None otherwise

    Example:
        >>> get_syscall("allocate").number
        1
    """
    return _CALLS_BY_NAME.get(name.upper())


def get_syscall_by_number(number: int) -> Optional[SystemCall]:
    """Look up a system call by its service number."""
    return _CALLS_BY_NUMBER.get(number)


def syscall_for(stmt: Statement) -> Optional[SystemCall]:
    """Return the system call a statement lowers to, or None."""
    return _CALLS_BY_NODE.get(type(stmt))
