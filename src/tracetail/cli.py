import logging
import signal
import sys

from tracetail.config import ConfigError, load_config
from tracetail.pipeline import Pipeline
from tracetail.statsd import StatsdClient
from tracetail.tail import FileTailer, stream_lines
from tracetail.traces import TraceExporter

logger = logging.getLogger("tracetail")


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def main() -> int:
    configure_logging()
    try:
        config = load_config()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))

    try:
        host, port = config.statsd_host_port()
        statsd = StatsdClient(host, port)
    except OSError as exc:
        logger.error("Failed to connect to DogStatsD at %s: %s", config.dogstatsd_address, exc)
        return 1

    exporter = TraceExporter(config)
    pipeline = Pipeline(config, statsd, exporter)

    if config.reads_stdin:
        logger.info("Starting Datadog sidecar - reading from stdin")
        try:
            pipeline.run(stream_lines(sys.stdin))
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Error reading stdin: %s", exc)
            return 1
        finally:
            exporter.close(timeout=config.trace_timeout)
            statsd.close()
        return 0

    logger.info("Starting Datadog sidecar - reading from %s", config.log_file)
    tailer = FileTailer(config.log_file, config.poll_interval, config.retry_interval)

    def _shutdown(signum, frame):
        logger.info("Received signal %d, shutting down", signum)
        tailer.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        pipeline.run(tailer)
    finally:
        exporter.close(timeout=config.trace_timeout)
        statsd.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
