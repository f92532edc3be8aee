import sys

from rich.console import Console

# click reports usage errors with this status; we report them as 1.
USAGE_ERROR_EXIT_CODE = 2


def run_app_cli():
    from mempress.cli import app as app_cli

    app_cli()


def app():
    from mempress.exception import MempressException

    try:
        run_app_cli()
    except KeyboardInterrupt:
        sys.exit(1)
    except SystemExit as e:
        if e.code == USAGE_ERROR_EXIT_CODE:
            sys.exit(1)
        raise
    except MempressException as e:
        print(str(e))
        sys.exit(1)
    finally:
        Console().show_cursor()
