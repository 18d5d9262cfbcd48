"""Markdown installation guides tailored to the detected environment.

Two documents are produced for ``reposwarm new``:

* ``INSTALL.md`` — a human-oriented walkthrough.
* ``REPOSWARM_INSTALL.md`` — numbered steps with explicit **Verify:**
  lines, written for a coding agent to follow.

Rendering functions are pure string builders; :func:`write_guides` is the
only one that touches the filesystem.
"""

from __future__ import annotations

from pathlib import Path

from reposwarm.config import TEMPORAL_NAMESPACE, TEMPORAL_TASK_QUEUE, ServiceConfig
from reposwarm.core.models import Environment
from reposwarm.core.services import compose_manifest, render_env_file
from reposwarm.exceptions import GuideWriteError

GUIDE_FILE = "INSTALL.md"
AGENT_GUIDE_FILE = "REPOSWARM_INSTALL.md"


# ---------------------------------------------------------------------------
# Shared fragments
# ---------------------------------------------------------------------------

def install_instructions(env: Environment, missing: list[str]) -> str:
    """Return per-dependency install snippets for the host's package managers."""
    blocks: list[str] = []
    for dep in missing:
        lines = [f"**{dep}:**"]
        if dep.startswith("docker"):
            if env.os == "darwin":
                lines.append(_bash("brew install --cask docker"))
            elif env.has_apt:
                lines.append(_bash("curl -fsSL https://get.docker.com | sh"))
            else:
                lines.append("Visit https://docs.docker.com/get-docker/")
        elif dep.startswith("node"):
            if env.has_brew:
                lines.append(_bash("brew install node@22"))
            else:
                lines.append(_bash(
                    "curl -fsSL https://deb.nodesource.com/setup_22.x | sudo -E bash -\n"
                    "sudo apt-get install -y nodejs",
                ))
        elif dep.startswith("python"):
            if env.has_brew:
                lines.append(_bash("brew install python@3.12"))
            elif env.has_apt:
                lines.append(_bash("sudo apt-get install -y python3 python3-venv python3-pip"))
        elif dep == "git":
            if env.has_brew:
                lines.append(_bash("brew install git"))
            elif env.has_apt:
                lines.append(_bash("sudo apt-get install -y git"))
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n\n" if blocks else ""


def _bash(script: str) -> str:
    return f"```bash\n{script}\n```"


def _worker_env(env: Environment, config: ServiceConfig) -> dict[str, str]:
    return {
        "TEMPORAL_ADDRESS": config.temporal_address,
        "TEMPORAL_NAMESPACE": TEMPORAL_NAMESPACE,
        "TEMPORAL_TASK_QUEUE": TEMPORAL_TASK_QUEUE,
        "AWS_REGION": env.aws_region,
        "DYNAMODB_TABLE": config.dynamodb_table,
        "DEFAULT_MODEL": config.default_model,
    }


def _api_env(env: Environment, config: ServiceConfig) -> dict[str, str]:
    return {
        "PORT": str(config.api_port),
        "TEMPORAL_ADDRESS": config.temporal_address,
        "TEMPORAL_NAMESPACE": TEMPORAL_NAMESPACE,
        "TEMPORAL_TASK_QUEUE": TEMPORAL_TASK_QUEUE,
        "AWS_REGION": env.aws_region,
        "DYNAMODB_TABLE": config.dynamodb_table,
        "BEARER_TOKEN": "your-secret-token-here",
        "AUTH_MODE": "local",
    }


def _heredoc(filename: str, content: str) -> str:
    return f"cat > {filename} << 'EOF'\n{content}EOF"


# ---------------------------------------------------------------------------
# Human guide
# ---------------------------------------------------------------------------

def render_install_guide(env: Environment, install_dir: Path, config: ServiceConfig) -> str:
    """Return the contents of ``INSTALL.md``."""
    missing = env.missing_deps()
    parts: list[str] = [
        "# RepoSwarm Local Installation Guide\n\n",
        f"Generated for: **{env.os}/{env.arch}**\n",
        f"Install directory: `{install_dir}`\n\n",
        "## Prerequisites\n\n",
    ]
    if missing:
        parts.append("### Missing dependencies — install these first:\n\n")
        parts.append(install_instructions(env, missing))
    else:
        parts.append("All required dependencies are installed.\n\n")
    parts.append(
        "### Required\n"
        "- Docker & Docker Compose (for Temporal)\n"
        "- Node.js 22+ (for API server & UI)\n"
        "- Python 3.11+ (for worker)\n"
        "- Git\n\n",
    )

    parts.append("## Temporal Server\n\n")
    parts.append("Temporal orchestrates the investigation workflows.\n\n")
    parts.append(_bash(
        f"cd {install_dir}\n"
        "mkdir -p temporal && cd temporal\n\n"
        f"{_heredoc('docker-compose.yml', compose_manifest(config))}\n\n"
        "docker compose up -d",
    ) + "\n\n")
    parts.append(
        f"Verify: `curl {config.temporal_health_url}` should return JSON.\n"
        f"Temporal UI: {config.temporal_ui_url}\n\n",
    )

    parts.append("## RepoSwarm Worker\n\n")
    parts.append(_bash(
        f"cd {install_dir}\n"
        f"git clone {config.worker_repo_url} worker\n"
        "cd worker\n"
        "python3 -m venv .venv\n"
        "source .venv/bin/activate\n"
        "pip install -r requirements.txt\n\n"
        f"{_heredoc('.env', render_env_file(_worker_env(env, config)))}\n\n"
        "python -m worker.main",
    ) + "\n\n")

    parts.append("## RepoSwarm API Server\n\n")
    parts.append(_bash(
        f"cd {install_dir}\n"
        f"git clone {config.api_repo_url} api\n"
        "cd api\n"
        "npm install\n\n"
        f"{_heredoc('.env', render_env_file(_api_env(env, config)))}\n\n"
        "npm run build\n"
        "npm start",
    ) + "\n\n")

    parts.append("## RepoSwarm UI\n\n")
    parts.append(_bash(
        f"cd {install_dir}\n"
        f"git clone {config.ui_repo_url} ui\n"
        "cd ui\n"
        "npm install\n\n"
        f"{_heredoc('.env.local', render_env_file({'NEXT_PUBLIC_API_URL': config.api_url}))}\n\n"
        "npm run dev",
    ) + "\n\n")
    parts.append(f"UI will be at: {config.ui_url}\n\n")

    parts.append("## Configuration\n\n")
    parts.append(_bash(
        f"reposwarm config set apiUrl {config.api_url}/v1\n"
        "reposwarm config set apiToken your-secret-token-here\n"
        "reposwarm status",
    ) + "\n\n")
    parts.append("Or let the CLI do all of the above: `reposwarm new --local`\n")
    return "".join(parts)


# ---------------------------------------------------------------------------
# Agent guide
# ---------------------------------------------------------------------------

def render_agent_guide(env: Environment, install_dir: Path, config: ServiceConfig) -> str:
    """Return the contents of ``REPOSWARM_INSTALL.md``."""
    missing = env.missing_deps()
    steps: list[tuple[str, str, str]] = []

    if missing:
        steps.append((
            "Install missing dependencies",
            install_instructions(env, missing).rstrip(),
            "`docker --version && node --version && python3 --version && git --version`"
            " all succeed",
        ))
    steps.extend([
        (
            "Start Temporal",
            _bash(
                f"mkdir -p {install_dir}/temporal && cd {install_dir}/temporal\n"
                f"{_heredoc('docker-compose.yml', compose_manifest(config))}\n"
                "docker compose up -d",
            ),
            f"`curl -s {config.temporal_health_url}` returns JSON",
        ),
        (
            "Set up the worker",
            _bash(
                f"cd {install_dir} && git clone {config.worker_repo_url} worker && cd worker\n"
                "python3 -m venv .venv && .venv/bin/pip install -r requirements.txt\n"
                f"{_heredoc('.env', render_env_file(_worker_env(env, config)))}\n"
                "nohup .venv/bin/python -m worker.main > worker.log 2>&1 &",
            ),
            "`worker.log` shows the worker polling "
            f"`{TEMPORAL_TASK_QUEUE}` in region `{env.aws_region}`",
        ),
        (
            "Set up the API server",
            _bash(
                f"cd {install_dir} && git clone {config.api_repo_url} api && cd api\n"
                "npm install && npm run build\n"
                f"{_heredoc('.env', render_env_file(_api_env(env, config)))}\n"
                "nohup npm start > api.log 2>&1 &",
            ),
            f"`curl -s {config.api_health_url}` returns HTTP 200",
        ),
        (
            "Set up the UI",
            _bash(
                f"cd {install_dir} && git clone {config.ui_repo_url} ui && cd ui\n"
                "npm install\n"
                f"echo 'NEXT_PUBLIC_API_URL={config.api_url}' > .env.local\n"
                "nohup npm run dev > ui.log 2>&1 &",
            ),
            f"`curl -s -o /dev/null -w '%{{http_code}}' {config.ui_url}` prints 200",
        ),
        (
            "Configure the CLI",
            _bash(
                f"reposwarm config set apiUrl {config.api_url}/v1\n"
                "reposwarm config set apiToken <the BEARER_TOKEN from api/.env>",
            ),
            "`reposwarm status` reports the API as healthy",
        ),
    ])

    first = 0 if missing else 1
    parts = [
        "# RepoSwarm Installation — Agent Instructions\n\n",
        f"Target system: {env.os}/{env.arch}. Install directory: `{install_dir}`.\n",
        "Complete each step and run its verification before moving on.\n\n",
    ]
    for number, (title, body, verify) in enumerate(steps, start=first):
        parts.append(f"## Step {number}: {title}\n\n{body}\n\n**Verify:** {verify}\n\n")
    return "".join(parts)


# ---------------------------------------------------------------------------
# Writing and agent hand-off
# ---------------------------------------------------------------------------

AGENT_DISPLAY_NAMES: dict[str, str] = {
    "claude": "Claude Code",
    "codex": "Codex",
    "cursor": "Cursor",
    "aider": "Aider",
}


def write_guides(env: Environment, install_dir: Path, config: ServiceConfig) -> tuple[Path, Path]:
    """Render both guides into *install_dir* and return their paths.

    Raises
    ------
    GuideWriteError
        If the directory or either file cannot be written.
    """
    guide_path = install_dir / GUIDE_FILE
    agent_path = install_dir / AGENT_GUIDE_FILE
    try:
        install_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        guide_path.write_text(render_install_guide(env, install_dir, config), encoding="utf-8")
        agent_path.write_text(render_agent_guide(env, install_dir, config), encoding="utf-8")
    except OSError as exc:
        raise GuideWriteError(f"writing guides to {install_dir}: {exc}") from exc
    return guide_path, agent_path


def agent_command(agent: str, install_dir: Path) -> tuple[str, ...]:
    """Return the command that hands the agent guide to *agent*.

    Raises
    ------
    ValueError
        For agents that cannot be driven from the command line.
    """
    agent_guide = install_dir / AGENT_GUIDE_FILE
    if agent == "claude":
        return (
            "claude",
            "--print",
            f"Read {agent_guide} and follow every step. Install RepoSwarm in "
            f"{install_dir}. Verify each step before moving to the next.",
        )
    if agent == "codex":
        return (
            "codex",
            f"Follow the instructions in {AGENT_GUIDE_FILE} step by step to "
            f"install RepoSwarm locally in {install_dir}",
        )
    if agent == "aider":
        return ("aider", "--read", str(agent_guide))
    raise ValueError(f"unsupported agent: {agent}")
