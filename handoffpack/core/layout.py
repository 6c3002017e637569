"""Fixed archive paths shared by the assembler and the verifier."""

from __future__ import annotations

CHAT_DIR = "chat"
CONTEXT_DIR = "context"
ARTIFACTS_DIR = "artifacts"
REPO_DIR = "repo"
PLATFORM_EXPORT_DIR = "platform_export"

CHAT_RAW_PATH = f"{CHAT_DIR}/0001_chat_raw.md"
CHAT_INDEX_PATH = f"{CHAT_DIR}/0002_chat_index.json"
README_PATH = "README.md"

REQUIRED_FILES: tuple[str, ...] = (CHAT_RAW_PATH, CHAT_INDEX_PATH, README_PATH)

REPO_CAPTURE_FILES = {
    "git_log": f"{REPO_DIR}/git_log.txt",
    "git_status": f"{REPO_DIR}/git_status.txt",
    "environment": f"{REPO_DIR}/environment.txt",
}
