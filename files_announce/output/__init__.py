"""Report rendering and description formatting."""
