"""Base classes for computation blocks.

This module provides the foundation for the blocks architecture:
- Block abstract base class
- BlockContext for passing data between blocks
- BlockExecutor for dependency resolution and execution
- Topological sort for DAG execution order
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field

from ..errors import ValuationError

logger = logging.getLogger(__name__)


# =============================================================================
# Block Context
# =============================================================================

@dataclass
class BlockContext:
    """Context object for passing data between blocks.

    Blocks read their inputs from context and write their outputs to context.
    This enables dependency resolution and chaining.

    Example:
        context = BlockContext()
        context.set("cap_table_snapshot", snapshot)

        BreakpointBlock().execute(context)

        # the block wrote "breakpoints" to context
        breakpoints_df = context.get("breakpoints")
    """

    _data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str) -> Any:
        """Get value from context.

        Raises:
            KeyError: If key not found in context
        """
        if key not in self._data:
            raise KeyError(f"Key '{key}' not found in context. Available keys: {list(self._data.keys())}")
        return self._data[key]

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return list(self._data.keys())


# =============================================================================
# Block Base Class
# =============================================================================

class Block(ABC):
    """Abstract base class for computation blocks.

    A Block is a reusable computation unit that:
    1. Declares its input dependencies (what it reads from context)
    2. Declares its output keys (what it writes to context)
    3. Implements compute logic in execute() method

    Subclass example:
        class DLOMBlock(Block):
            def __init__(self, inputs_key: str = "dlom_inputs"):
                self.inputs_key = inputs_key

            def inputs(self) -> List[str]:
                return [self.inputs_key]

            def outputs(self) -> List[str]:
                return ["dlom_results", "dlom_summary"]

            def execute(self, context: BlockContext) -> None:
                dlom_inputs = context.get(self.inputs_key)
                ...
                context.set("dlom_results", results_df)
                context.set("dlom_summary", summary_df)
    """

    @abstractmethod
    def inputs(self) -> List[str]:
        """Declare input dependencies (keys to read from context)."""
        pass

    @abstractmethod
    def outputs(self) -> List[str]:
        """Declare outputs (keys to write to context)."""
        pass

    @abstractmethod
    def execute(self, context: BlockContext) -> None:
        """Read inputs from context, compute, write outputs to context.

        Raises:
            KeyError: If required inputs not available in context
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(inputs={self.inputs()}, outputs={self.outputs()})"


# =============================================================================
# Dependency Resolution
# =============================================================================

class CircularDependencyError(ValuationError):
    """Raised when blocks have circular dependencies."""
    pass


def topological_sort(blocks: List[Block]) -> List[Block]:
    """Sort blocks in topological order for execution.

    Uses Kahn's algorithm. Inputs that no block produces must come from
    the initial context.

    Raises:
        CircularDependencyError: If blocks have circular dependencies
        ValueError: If two blocks produce the same output key

    Example:
        block1.outputs() = ["A"]
        block2.inputs() = ["A"], outputs() = ["B"]
        block3.inputs() = ["B"], outputs() = ["C"]

        topological_sort([block3, block1, block2])
        → [block1, block2, block3]
    """
    output_to_block: Dict[str, Block] = {}
    for block in blocks:
        for output_key in block.outputs():
            if output_key in output_to_block:
                raise ValueError(
                    f"Multiple blocks produce '{output_key}': "
                    f"{output_to_block[output_key]} and {block}"
                )
            output_to_block[output_key] = block

    in_degree: Dict[Block, int] = {block: 0 for block in blocks}
    adjacency: Dict[Block, List[Block]] = {block: [] for block in blocks}

    for block in blocks:
        for input_key in block.inputs():
            if input_key in output_to_block:
                producer = output_to_block[input_key]
                adjacency[producer].append(block)
                in_degree[block] += 1

    queue = deque(block for block in blocks if in_degree[block] == 0)
    sorted_blocks: List[Block] = []

    while queue:
        current = queue.popleft()
        sorted_blocks.append(current)

        for neighbor in adjacency[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if len(sorted_blocks) != len(blocks):
        remaining = [block for block in blocks if in_degree[block] > 0]
        raise CircularDependencyError(
            f"Circular dependency detected among blocks: {remaining}"
        )

    return sorted_blocks


# =============================================================================
# Block Executor
# =============================================================================

class BlockExecutor:
    """Executes blocks in dependency order.

    The executor:
    1. Resolves dependencies using topological sort
    2. Executes blocks in order
    3. Validates that all required inputs are available
    4. Returns final context with all outputs

    Example:
        executor = BlockExecutor([OPMBlock(), BreakpointBlock(), CapTableBlock()])
        context = BlockContext()
        context.set("cap_table_snapshot", snapshot)
        context.set("equity_value", 50_000_000)
        context.set("opm_assumptions", assumptions)

        executor.execute(context)

        allocation_df = context.get("opm_allocation")
    """

    def __init__(self, blocks: List[Block]):
        """Initialize executor with blocks (order doesn't matter - they are sorted)."""
        self.blocks = blocks
        self._sorted_blocks: Optional[List[Block]] = None

    def execute(self, context: BlockContext) -> BlockContext:
        """Execute all blocks in dependency order.

        Returns:
            Context with all block outputs

        Raises:
            CircularDependencyError: If blocks have circular dependencies
            KeyError: If required inputs not available in context
        """
        if self._sorted_blocks is None:
            self._sorted_blocks = topological_sort(self.blocks)
            logger.debug(
                "Execution order: %s",
                [block.__class__.__name__ for block in self._sorted_blocks],
            )

        for block in self._sorted_blocks:
            self._validate_inputs(block, context)
            logger.debug("Running %s", block.__class__.__name__)
            block.execute(context)
            self._validate_outputs(block, context)

        return context

    def _validate_inputs(self, block: Block, context: BlockContext) -> None:
        for input_key in block.inputs():
            if not context.has(input_key):
                raise KeyError(
                    f"Block {block} requires input '{input_key}' but it's not in context. "
                    f"Available keys: {context.keys()}"
                )

    def _validate_outputs(self, block: Block, context: BlockContext) -> None:
        for output_key in block.outputs():
            if not context.has(output_key):
                raise ValueError(
                    f"Block {block} declared output '{output_key}' but didn't write it to context"
                )
