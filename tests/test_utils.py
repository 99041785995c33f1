import logging

from create2_deployer.utils import format_ether, setup_console_logging


def test_format_ether():
    assert format_ether(0) == "0 ETH"
    assert format_ether(10**18) == "1 ETH"
    assert format_ether(10 * 10**18) == "10 ETH"
    assert format_ether(1_234_500_000_000_000_000) == "1.2345 ETH"
    assert format_ether(1) == "0.000000000000000001 ETH"


def test_log_level_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    logger = setup_console_logging()
    assert logger is logging.getLogger()
    assert logging.getLogger("urllib3.connectionpool").level == logging.WARNING
