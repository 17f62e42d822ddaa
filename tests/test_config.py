import os
import tempfile

from flowr.config import Config, load_config, load_config_or_default, save_config
from flowr.logging_utils import setup_logging


def test_save_and_load_config_roundtrip():
    cfg = Config(state_dir="/tmp/flowr-state")
    cfg.speech.enabled = True
    cfg.speech.mode = "keyword"
    cfg.speech.keyword = "done"
    cfg.bot.refresh_seconds = 2.5

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "flowr_config.yml")
        save_config(path, cfg)
        loaded = load_config(path)

    assert loaded.state_dir == "/tmp/flowr-state"
    assert loaded.speech.keyword == "done"
    assert loaded.bot.refresh_seconds == 2.5
    voice = loaded.speech.voice()
    assert voice.enabled and voice.mode == "keyword"


def test_missing_config_uses_defaults():
    with tempfile.TemporaryDirectory() as tmp:
        cfg = load_config_or_default(os.path.join(tmp, "absent.yml"))
    assert cfg.history_limit == 10
    assert cfg.speech.restart_delay_seconds == 0.5
    assert cfg.bot.refresh_seconds == 5.0


def test_bad_voice_mode_is_rejected():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "flowr_config.yml")
        with open(path, "w", encoding="utf-8") as handle:
            handle.write("speech:\n  mode: shout\n")
        try:
            load_config(path)
        except ValueError:
            pass
        else:
            raise AssertionError("expected ValueError")


def test_setup_logging_writes_under_log_dir():
    with tempfile.TemporaryDirectory() as tmp:
        logger, path = setup_logging(os.path.join(tmp, "logs"), console=True)
        try:
            assert path == os.path.join(tmp, "logs", "flowr.log")
            assert os.path.isdir(os.path.join(tmp, "logs"))
            assert logger.name == "flowr"
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
