from typing import List, Optional

from rich.console import Capture

from mempress import console


class MempressException(RuntimeError):
    """Error whose message is whatever gets printed inside its block.

        with AllocationError() as err:
            err.print('[error]Memory allocation failed.[/error]')

    The output is rendered through a rich console and captured, and the
    exception raises itself when the block exits.
    """

    def __init__(self):
        super().__init__()
        self.msg: List[str] = []
        self.capture: Optional[Capture] = None
        self.console = console.new_console()

    def print(self, *args, **kwargs):
        assert self.capture is not None, 'print only inside the exception block'
        self.console.print(*args, **kwargs)

    def __enter__(self):
        self.capture = self.console.capture()
        self.capture.__enter__()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.capture is not None:
            self.capture.__exit__(exc_type, exc_value, traceback)
            self.msg.append(self.capture.get())
            self.capture = None
        if exc_type is not None:
            return
        raise self

    def __str__(self) -> str:
        return ''.join(self.msg)


class AllocationError(MempressException):
    pass
