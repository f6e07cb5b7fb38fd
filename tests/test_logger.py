import pytest
import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logger as _logger_mod


@pytest.fixture
def fresh_logger():
    yield _logger_mod.setup_logger("run-1")
    _logger_mod.setup_logger("test-run")


class TestLogger:

    def test_child_name(self, fresh_logger):
        assert _logger_mod.get_logger("scraper").name == "bcv.scraper"
        assert _logger_mod.get_logger("bcv.job").name == "bcv.job"

    def test_run_id_on_every_line(self, fresh_logger, capsys):
        _logger_mod.setup_logger("run-1")
        _logger_mod.get_logger("scraper").info("hello")
        out = capsys.readouterr().out
        assert "[run-1]" in out
        assert "bcv.scraper" in out
        assert "hello" in out

    def test_set_run_id_restamps(self, fresh_logger, capsys):
        _logger_mod.setup_logger("run-1")
        log = _logger_mod.get_logger("job")
        _logger_mod.set_run_id("job-42")
        log.info("inside job")
        assert "[job-42]" in capsys.readouterr().out

    def test_setup_twice_does_not_duplicate(self, fresh_logger, capsys):
        _logger_mod.setup_logger("run-1")
        _logger_mod.setup_logger("run-2")
        _logger_mod.get_logger("scrape").info("once")
        assert capsys.readouterr().out.count("once") == 1
