"""
Worker entrypoint - expiry sweep loop, content scan consumer and the
Prometheus metrics server.
"""
import logging
import signal
import threading

from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.services.engine import build_engine
from moderation_engine.services.expiry_sweeper import ExpirySweeper
from moderation_engine.streaming.content_scan_consumer import ContentScanConsumer

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class Worker:
    """Background half of the engine; the API serves requests separately"""

    def __init__(self, settings: EngineSettings):
        self.settings = settings
        self.engine = build_engine(settings)
        self.metrics = MetricsExporter(port=settings.metrics_port)
        self.sweeper = ExpirySweeper(self.engine.enforcement, settings.sweep_interval_seconds)
        self.stop_event = threading.Event()

    def start(self):
        self.metrics.start()

        sweep_thread = threading.Thread(
            target=self.sweeper.run_forever,
            args=(self.stop_event,),
            daemon=True
        )
        sweep_thread.start()

        if self.engine.broker is not None:
            consumer = ContentScanConsumer(self.engine, self.engine.broker)
            scan_thread = threading.Thread(target=consumer.run, daemon=True)
            scan_thread.start()
        else:
            logger.info("KAFKA_BOOTSTRAP_SERVERS not set, content scan consumer disabled")

        logger.info("Worker started")
        try:
            while not self.stop_event.is_set():
                self.stop_event.wait(1)
        except KeyboardInterrupt:
            self.stop_event.set()
        logger.info("Shutting down worker...")
        self.engine.close()

    def stop(self, *_):
        self.stop_event.set()


def main():
    worker = Worker(EngineSettings.from_env())
    signal.signal(signal.SIGTERM, worker.stop)
    worker.start()


if __name__ == '__main__':
    main()
