"""
Shared pytest fixtures.

Key fixture: `isolated_dir` changes the working directory to a fresh
temporary directory for every test that requests it. Transcript discovery and
the working-directory endpoints.toml are relative to CWD, so this keeps tests
from seeing each other's files (or the real repo's).
"""

import pytest

import mdchat.config as config_module


@pytest.fixture
def isolated_dir(tmp_path, monkeypatch):
    """
    Change CWD to a fresh temp directory and point the config layers at it.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "USER_CONFIG_FILE", tmp_path / "user.toml")
    monkeypatch.setattr(config_module, "REPO_CONFIG_FILE", tmp_path / "endpoints.toml")
    return tmp_path
