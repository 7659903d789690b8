STATE_DIR_NAME = ".opencode"
STATE_FILE_PATH = f"{STATE_DIR_NAME}/transmute.sessions.json"

CONFIG_FILE_NAME = "transmute.config.json"

DEFAULT_WORKTREES_DIR = "worktrees"
DEFAULT_BASE_BRANCH = "main"
DEFAULT_SLUG_LENGTH = 40

DETACHED_BRANCH = "(detached)"

BRANCH_TYPES = ("feat", "fix", "refactor", "docs", "chore", "test")

TMUX_SESSION_PREFIX = "transmute"
