"""Integration tests running whole panel-years end to end."""
