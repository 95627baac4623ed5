"""Test suite for the work item import tool."""
