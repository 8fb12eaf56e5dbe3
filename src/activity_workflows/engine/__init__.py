"""Workflow engine components.

- Definitions: activities, bindings and the builder
- Execution: the scheduler and the per-instance context
- Suspension: bookmarks, triggers and the shared registry
- Hosting: the runtime, persistence, settings, logging and the CLI
"""
