"""API clients package for the work item import.

Lazily expose the REST client to avoid importing ``requests`` at package import
time.
"""

__all__ = ["AzureDevOpsClient"]


def __getattr__(name: str) -> object:
    if name == "AzureDevOpsClient":
        from .azure_devops_client import AzureDevOpsClient as _AzureDevOpsClient  # noqa: PLC0415

        return _AzureDevOpsClient
    raise AttributeError(name)
