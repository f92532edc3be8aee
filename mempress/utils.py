from mempress import __version__


def get_version() -> str:
    return __version__.__version__
