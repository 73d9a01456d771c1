"""Logging setup and address helpers."""

import logging

import pytest

from eth_fee_vault.utils import addr, setup_console_logging


def test_addr_lowercases():
    assert addr("0x" + "AB" * 20) == "0x" + "ab" * 20


def test_addr_rejects_garbage():
    with pytest.raises(AssertionError):
        addr("0x1234")
    with pytest.raises(AssertionError):
        addr(None)


def test_setup_console_logging_with_file(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    log_file = tmp_path / "logs" / "vault.log"
    root = setup_console_logging(default_log_level="info", log_file=log_file, only_log_file=True)

    logging.getLogger("eth_fee_vault.test").info("Hello vault")
    for handler in root.handlers:
        handler.flush()

    assert "Hello vault" in log_file.read_text()
    assert logging.getLogger("urllib3.connectionpool").level == logging.WARNING

    root.handlers.clear()
