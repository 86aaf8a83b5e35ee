"""ghcli: provision GitHub repositories according to organization policy."""

__version__ = "0.1.0"
