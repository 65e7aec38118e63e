import io

from loguru import logger

from ovirtagent.logging import LogConfig, NoCloseWriter, TaskLog, setup_logging, teardown_logging


class TestTaskLog:
    def test_println_writes_a_line(self, task_log, console):
        task_log.println("Starting VM builder01")
        assert console.getvalue() == "Starting VM builder01\n"

    def test_error_is_prefixed(self, task_log, console):
        task_log.error("boom")
        assert console.getvalue() == "ERROR: boom\n"

    def test_write_buffers_partial_lines(self, task_log, console):
        task_log.write(b"Error: could not ")
        assert console.getvalue() == ""
        task_log.write(b"find main class\r\nnext")
        assert console.getvalue() == "Error: could not find main class\n"
        task_log.flush()
        assert console.getvalue().endswith("next\n")

    def test_without_stream(self):
        TaskLog("builder01").println("only to loguru")


class TestNoCloseWriter:
    def test_close_detaches_without_closing(self):
        stream = io.StringIO()
        writer = NoCloseWriter(TaskLog("a", stream))
        writer.write(b"line\npartial")
        writer.close()

        assert writer.closed
        assert not stream.closed
        assert stream.getvalue() == "line\npartial\n"

        writer.write(b"dropped\n")
        assert "dropped" not in stream.getvalue()


class TestSetupLogging:
    def test_handlers_are_returned_and_removed(self, tmp_path):
        log_file = tmp_path / "ovirtagent.log"
        handlers = setup_logging(LogConfig(level="DEBUG", file=str(log_file), console=False))
        try:
            assert len(handlers) == 1
            logger.bind(component="test").info("hello from tests")
        finally:
            teardown_logging(handlers)

    def test_console_only(self):
        handlers = setup_logging(LogConfig(level="INFO"))
        teardown_logging(handlers)
        assert len(handlers) == 1
