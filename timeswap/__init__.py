"""TimeSwap core library — data layer, engines and integrations.

Public API re-exports for convenient imports:
    from timeswap import Settings, DocumentStore, create_task, send_message, ...
"""

# Configuration
from timeswap.config import Settings, configure_logging

# Errors
from timeswap.errors import (
    TimeSwapError,
    ValidationError,
    AuthenticationError,
    NotFoundError,
    QuotaExceededError,
    StorageError,
    IntegrationError,
)

# Layout & time
from timeswap.workspace import (
    RESOURCE_FILES,
    is_valid_user_id,
    now_utc,
    to_iso,
    parse_timestamp,
)

# File I/O
from timeswap.fileio import (
    read_json,
    read_yaml,
    write_json_atomic,
)

# Store
from timeswap.store import DocumentStore, default_document

# Models
from timeswap.models import (
    Task,
    Preferences,
    WorkingHours,
    ChatEntry,
    Schedule,
    Analytics,
    Trends,
    Baseline,
    DayStat,
    CategoryTime,
    Profile,
)

# Ranking
from timeswap.ranking import (
    sort_tasks,
    optimize_tasks,
    score_task,
    score_breakdown,
    energy_level_for,
)

# Analytics
from timeswap.analytics import compute_analytics, refresh_analytics, load_analytics

# Tasks
from timeswap.tasks import (
    validate_task,
    load_tasks,
    list_tasks,
    create_task,
    update_task,
    toggle_task,
    delete_task,
    optimize_user_tasks,
)

# Chat
from timeswap.chat import (
    ChatContext,
    generate_response,
    send_message,
    list_chats,
    chats_today,
    clear_chats,
)

# Dashboard
from timeswap.dashboard import build_summary, build_recommendations, todays_schedule
