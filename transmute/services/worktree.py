import logging
from pathlib import Path

from transmute.constants import DEFAULT_BASE_BRANCH, DEFAULT_WORKTREES_DIR, DETACHED_BRANCH
from transmute.errors import WorktreeError
from transmute.models import Worktree
from transmute.services.exec import branch_exists, get_git_root, git_exec

logger = logging.getLogger(__name__)


def _strip_trailing_slash(path: str) -> str:
    return path.rstrip("/") or path


def parse_worktree_list_output(output: str, main_path: str) -> list[Worktree]:
    """Parse `git worktree list --porcelain` into Worktree records.

    Blocks are separated by blank lines. A block is the main checkout when its
    path equals ``main_path`` (trailing slashes ignored).
    """
    main = _strip_trailing_slash(main_path)
    worktrees: list[Worktree] = []
    current_path = ""
    current_branch = ""
    current_head: str | None = None

    def flush() -> None:
        if not current_path:
            return
        worktrees.append(
            Worktree(
                path=current_path,
                branch=current_branch or DETACHED_BRANCH,
                is_main=_strip_trailing_slash(current_path) == main,
                head=current_head,
            )
        )

    for line in output.splitlines():
        if line.startswith("worktree "):
            flush()
            current_path = line[len("worktree "):]
            current_branch = ""
            current_head = None
        elif line.startswith("HEAD "):
            current_head = line[len("HEAD "):]
        elif line.startswith("branch "):
            current_branch = line[len("branch "):].removeprefix("refs/heads/")
        elif line == "detached":
            current_branch = DETACHED_BRANCH
        elif line == "" and current_path:
            flush()
            current_path = ""

    # Output may not end with a blank line
    flush()
    return worktrees


def list_worktrees(cwd: Path | str | None = None) -> list[Worktree]:
    root = get_git_root(cwd)
    result = git_exec(["worktree", "list", "--porcelain"], cwd=root)
    return parse_worktree_list_output(result.stdout, str(root))


def get_worktree_by_branch(branch: str, cwd: Path | str | None = None) -> Worktree | None:
    for worktree in list_worktrees(cwd):
        if worktree.branch == branch:
            return worktree
    return None


def worktree_exists(branch: str, cwd: Path | str | None = None) -> bool:
    """True if some worktree (main included) has ``branch`` checked out."""
    return get_worktree_by_branch(branch, cwd) is not None


def get_worktrees_dir(repo_root: Path | str, worktrees_dir: str = DEFAULT_WORKTREES_DIR) -> Path:
    path = Path(worktrees_dir)
    if path.is_absolute():
        return path
    return (Path(repo_root) / path).resolve()


def get_worktree_path(
    repo_root: Path | str,
    branch: str,
    worktrees_dir: str = DEFAULT_WORKTREES_DIR,
) -> Path:
    """Directory for a branch: ``feat/auth`` lives in ``<worktrees>/feat-auth``."""
    return get_worktrees_dir(repo_root, worktrees_dir) / branch.replace("/", "-")


def _base_exists(base_branch: str, cwd: Path) -> bool:
    result = git_exec(
        ["rev-parse", "--verify", "--quiet", f"refs/heads/{base_branch}"],
        cwd=cwd,
        throw_on_error=False,
    )
    return result.ok


def create_worktree(
    branch: str,
    base_branch: str = DEFAULT_BASE_BRANCH,
    target_dir: Path | str | None = None,
    worktrees_dir: str | None = None,
    cwd: Path | str | None = None,
) -> Worktree:
    """Create a worktree for ``branch``, creating the branch from ``base_branch`` if needed.

    All preconditions are checked before git is asked to change anything:

    - BRANCH_EXISTS if the branch is already checked out in a worktree,
    - DIR_EXISTS if the target directory exists,
    - BASE_NOT_FOUND if the base is not a local branch.

    An existing branch that is not checked out anywhere is attached as is.
    """
    if not branch:
        raise ValueError("branch must not be empty")

    root = get_git_root(cwd)
    if target_dir is not None:
        target = Path(target_dir)
        if not target.is_absolute():
            target = (root / target).resolve()
    else:
        target = get_worktree_path(root, branch, worktrees_dir or DEFAULT_WORKTREES_DIR)

    existing_branch = branch_exists(branch, cwd=root)
    if existing_branch and get_worktree_by_branch(branch, root) is not None:
        raise WorktreeError.branch_exists(branch)
    if target.exists():
        raise WorktreeError.dir_exists(str(target))
    if not _base_exists(base_branch, root):
        raise WorktreeError.base_not_found(base_branch)

    target.parent.mkdir(parents=True, exist_ok=True)
    if existing_branch:
        git_exec(["worktree", "add", str(target), branch], cwd=root)
    else:
        git_exec(["worktree", "add", "-b", branch, str(target), base_branch], cwd=root)

    head = git_exec(["rev-parse", "HEAD"], cwd=target).stdout.strip() or None
    logger.info("Created worktree", extra={"branch": branch, "path": str(target), "base": base_branch})
    return Worktree(path=str(target), branch=branch, is_main=False, head=head)


def remove_worktree(path: Path | str, force: bool = False, cwd: Path | str | None = None) -> None:
    args = ["worktree", "remove"]
    if force:
        args.append("--force")
    args.append(str(path))
    git_exec(args, cwd=cwd or get_git_root())
    logger.info("Removed worktree", extra={"path": str(path), "force": force})


def prune_worktrees(cwd: Path | str | None = None) -> None:
    """Drop administrative records for worktrees whose directories are gone."""
    git_exec(["worktree", "prune"], cwd=cwd or get_git_root())
