"""Internal constants shared across the library."""

USER_AGENT = "halocation/1.0"

API_ROOT = "/api/"
STATES_ENDPOINT = "/api/states/{entity_id}"
HISTORY_ENDPOINT = "/api/history/period/{start}"

#: Fixed retry schedule for the startup connectivity check.
PING_RETRIES = 3
PING_INITIAL_INTERVAL = 0.5
PING_MULTIPLIER = 1.5
PING_MAX_INTERVAL = 60.0

#: Upper bound for a graceful server shutdown, in seconds.
SHUTDOWN_TIMEOUT = 60.0
