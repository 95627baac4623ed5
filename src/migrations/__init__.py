"""Migration components of the work item import."""
