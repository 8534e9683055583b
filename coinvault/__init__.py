from coinvault.__about__ import __app_name__, __version__

__all__ = ["__app_name__", "__version__"]
