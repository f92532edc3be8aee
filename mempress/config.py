import signal

from pydantic import BaseModel, Field, field_validator

MB_SIZE = 1024 * 1024


def resolve_signal(name: str) -> signal.Signals:
    return signal.Signals[name.upper()]


class PressureConfig(BaseModel):
    max_memory_per_process: int = Field(
        default=1000,
        ge=1,
        description='Maximum amount of memory a single worker allocates, in MB.',
    )

    pause_signal: str = Field(
        default='SIGUSR1',
        description='Signal used to toggle pause/resume on workers.',
    )

    terminate_signal: str = Field(
        default='SIGTERM',
        description='Signal used to terminate workers on shutdown.',
    )

    fill_byte: int = Field(
        default=0xAA,
        ge=0,
        le=0xFF,
        description='Byte written over allocated memory to force it to be committed.',
    )

    idle_interval: float = Field(
        default=1.0,
        gt=0,
        description='Seconds between wake-ups of a worker that finished allocating.',
    )

    @field_validator('pause_signal', 'terminate_signal')
    @classmethod
    def _check_signal(cls, value: str) -> str:
        try:
            return resolve_signal(value).name
        except KeyError:
            raise ValueError(f'unknown signal {value!r}') from None

    def get_pause_signal(self) -> signal.Signals:
        return resolve_signal(self.pause_signal)

    def get_terminate_signal(self) -> signal.Signals:
        return resolve_signal(self.terminate_signal)
