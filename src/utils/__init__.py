"""Utility modules for the work item import tool."""
