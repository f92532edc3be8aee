import dataclasses
from typing import List, Optional, Tuple

from mempress.config import MB_SIZE, PressureConfig


class PlanError(ValueError):
    pass


@dataclasses.dataclass(frozen=True)
class AllocationPlan:
    total_memory_mb: int
    steps: int
    delay_ms: int
    num_processes: int
    memory_per_process: int  # megabytes

    @property
    def mb_per_step(self) -> int:
        return self.memory_per_process // self.steps

    @property
    def dropped_mb(self) -> int:
        """Requested megabytes no worker will allocate due to truncation."""
        return self.total_memory_mb - self.memory_per_process * self.num_processes


def compute_plan(
    total_memory_mb: int,
    steps: int,
    delay_ms: int,
    config: Optional[PressureConfig] = None,
) -> AllocationPlan:
    """Split `total_memory_mb` across as few workers as the ceiling allows.

    The number of workers is ceil(total / max_memory_per_process), and each
    worker gets total // num_processes megabytes. Whatever does not divide
    evenly is dropped, never redistributed.
    """
    if total_memory_mb < 1:
        raise PlanError(f'total memory must be at least 1 MB, got {total_memory_mb}')
    if steps < 1:
        raise PlanError(f'steps must be at least 1, got {steps}')
    if delay_ms < 0:
        raise PlanError(f'delay must not be negative, got {delay_ms}')

    ceiling = (config or PressureConfig()).max_memory_per_process
    num_processes = (total_memory_mb + ceiling - 1) // ceiling
    return AllocationPlan(
        total_memory_mb=total_memory_mb,
        steps=steps,
        delay_ms=delay_ms,
        num_processes=num_processes,
        memory_per_process=total_memory_mb // num_processes,
    )


def get_step_size(memory_mb: int, steps: int) -> int:
    return (memory_mb * MB_SIZE) // steps


def get_step_ranges(memory_mb: int, steps: int) -> List[Tuple[int, int]]:
    """Byte ranges touched by each step of a worker allocating `memory_mb`.

    The ranges tile [0, steps * step_size). Any remainder at the end of the
    block is left untouched.
    """
    step_size = get_step_size(memory_mb, steps)
    return [(i * step_size, (i + 1) * step_size) for i in range(steps)]
