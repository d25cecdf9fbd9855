"""Progress reporting for long-running commands."""
