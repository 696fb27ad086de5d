from __future__ import annotations

import ipaddress
import logging
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .cursor import AddressCursor
from .models import ScanConfig, ScanStats
from .output import ResultSink, format_line
from .probe import Prober

logger = logging.getLogger(__name__)


class Scanner:
    """
    Fixed pool of probe workers fed by a single producer.

    The producer walks the cursor up to the address budget and pushes each
    address onto a bounded queue; workers report into one ResultSink. Output
    order follows probe completion, not address order.
    """

    def __init__(
        self,
        config: ScanConfig,
        prober: Optional[Prober] = None,
        cursor: Optional[AddressCursor] = None,
    ):
        self.config = config
        self.prober = prober or Prober(config)
        self.cursor = cursor or AddressCursor(config.address)

    def scan(self, sink: Optional[ResultSink] = None) -> ScanStats:
        """
        Run the whole sweep. The sink is opened here unless an open one is
        passed in; either way it is closed when the sweep ends.
        """
        start = time.perf_counter()
        if sink is None:
            sink = ResultSink(self.config).open()
        try:
            dispatched = self._drive(sink)
        finally:
            sink.close()
        elapsed = time.perf_counter() - start
        return ScanStats(dispatched=dispatched, emitted=sink.emitted, elapsed_s=round(elapsed, 4))

    def _drive(self, sink: ResultSink) -> int:
        threads = self.config.threads
        addresses: queue.Queue[Optional[ipaddress.IPv4Address]] = queue.Queue(maxsize=self.config.budget)
        dispatched = 0

        with ThreadPoolExecutor(max_workers=threads, thread_name_prefix="probe") as pool:
            for _ in range(threads):
                pool.submit(self._worker, addresses, sink)

            for _ in range(self.config.budget):
                address = self.cursor.next(True)
                if address is None:
                    logger.warning("Address range exhausted at %s", self.cursor.current)
                    break
                addresses.put(address)
                dispatched += 1

            # Every dispatched address has been probed once join() returns.
            addresses.join()
            for _ in range(threads):
                addresses.put(None)

        return dispatched

    def _worker(self, addresses: queue.Queue[Optional[ipaddress.IPv4Address]], sink: ResultSink) -> None:
        while True:
            address = addresses.get()
            if address is None:
                return
            try:
                outcome = self.prober.probe(address)
                if self.prober.should_record(outcome):
                    sink.put(format_line(outcome))
            except Exception:
                logger.exception("Unexpected error probing %s", address)
            finally:
                addresses.task_done()
