# config.example.py

"""
Documentation-only module (safe to commit).

Configuration is read from environment variables (optionally via a local .env file).
Do NOT commit real tokens; keep them in .env (gitignored).
"""

ENV_VARS = {
    # App / logging
    "FLOWTASK_APP_NAME": "App display name (default: flowtask).",
    "FLOWTASK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Persistence API
    "FLOWTASK_API_BASE_URL": "Dashboard API base URL, e.g. http://localhost:3000 (empty => in-process API).",
    "FLOWTASK_API_TOKEN": "Optional bearer token sent with every API request.",
    "FLOWTASK_HTTP_TIMEOUT_SECONDS": "Per-request timeout for the HTTP API (default: 15).",
    "FLOWTASK_OFFLINE_LATENCY_SECONDS": "Artificial delay per in-process API call (default: 0).",
    # Session
    "FLOWTASK_USER_ID": "Signed-in user id. Empty => signed out, task changes stay local.",
    # Sync behaviour
    "FLOWTASK_STRICT_ORDERING": "Drop responses of superseded mutations (true/false, default: false).",
    # Paths (gitignored)
    "FLOWTASK_DATA_DIR": "Local data directory for logs and cache (default: .local/flowtask).",
    "FLOWTASK_PERSIST_TASKS": "Keep a JSON cache of the task list between runs (default: true).",
    "FLOWTASK_TASKS_CACHE_PATH": "Task cache path (default: <data_dir>/tasks.json).",
    # Front-end
    "FLOWTASK_CONSOLE_ENABLED": "Start the console REPL (default: true). False => sync once and exit.",
}
