"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Subtask, Tag, TaskDraft, enums)
- task_store.py: in-memory task collection + optional JSON cache
- subtask_store.py: per-task subtask collections with loading/loaded flags
- coordinator.py: optimistic create/update/delete against the persistence API
- task_sync.py: wire mapping (API record <-> Task)
- ordering.py: positional ordering of subtasks
- tags.py: tag registry
- views.py: board/today/calendar/analytics read helpers
"""
