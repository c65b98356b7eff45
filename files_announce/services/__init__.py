"""Services: checkpoint, catalog, options, templates and delivery."""
