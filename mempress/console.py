from rich.console import Console
from rich.theme import Theme

theme = Theme(
    {
        'default': 'bright_white',
        'mempress': 'bold italic yellow',
        'info': 'bright_black',
        'status': 'bright_white',
        'item': 'bold blue',
        'error': 'bold red',
        'success': 'bold green',
        'warning': 'bold yellow',
    }
)
console = Console(theme=theme, style='info', highlight=False, soft_wrap=True)
stderr_console = Console(
    theme=theme, style='info', highlight=False, soft_wrap=True, stderr=True
)


def new_console(stderr: bool = False) -> Console:
    return Console(
        theme=theme, style='info', highlight=False, soft_wrap=True, stderr=stderr
    )
