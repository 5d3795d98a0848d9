"""Static sub-commands for the bootscripts CLI."""
