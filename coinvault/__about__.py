__app_name__ = "coinvault"
__version__ = "0.3.0"
