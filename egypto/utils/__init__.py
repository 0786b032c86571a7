"""
UTILITIES PACKAGE
=================

Helpers used by the services (no HTTP, no business logic):

  background - BackgroundTasks: detached fire-and-forget tasks with logged failures.
  text       - placeholder_title() and clean_title() for conversation titles.
"""
