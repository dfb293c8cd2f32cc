"""Tests for the server entry point"""
from unittest.mock import patch

import run


def test_server_runs_a_single_process(monkeypatch):
    monkeypatch.setattr("sys.argv", ["run.py", "--port", "8080"])

    with patch("run.uvicorn.run") as serve:
        run.main()

    args, kwargs = serve.call_args
    assert args == ("statecraft.main:app",)
    assert kwargs["port"] == 8080
    assert "workers" not in kwargs
