"""files-announce: periodic "new files" bulletins for a file base.

Scans file catalog areas for files uploaded since the last run, renders
a report from five operator templates and posts it to message areas.
"""

__version__ = "1.0.0"
