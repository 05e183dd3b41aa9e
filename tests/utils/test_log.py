import logging

from k3sboot.logging.log import init_logging


def test_init_logging_writes_run_file(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="k3sboot-log-test", verbose=True)
    try:
        logger.debug("[demo-master-1] $ swapoff -a")
        for h in logger.handlers:
            h.flush()

        assert log_path.parent == tmp_path
        assert run_id in log_path.name
        text = log_path.read_text()
        assert f"run_id={run_id}" in text
        assert "swapoff -a" in text
        assert logger.propagate is False
        levels = sorted(h.level for h in logger.handlers)
        assert levels == [logging.DEBUG, logging.DEBUG]
    finally:
        for h in list(logger.handlers):
            h.close()
        logger.handlers.clear()
