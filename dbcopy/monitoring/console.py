"""
Console Progress Renderer
One tqdm progress bar per collection plus a final summary report
"""
import logging
import sys
from typing import Dict, Optional, TextIO

from tqdm import tqdm

from .progress import EventKind, ProgressEvent

logger = logging.getLogger(__name__)

class ConsoleProgressRenderer:
    """
    Progress sink that draws tqdm bars

    Features:
    - One bar per collection, sized to the collection's document count
    - Throughput and transferred MB in the bar postfix
    - Success/failure marker when a collection finishes
    - Summary report of the run
    """

    def __init__(self, file: Optional[TextIO] = None, disable: bool = False):
        self.file = file or sys.stdout
        self.disable = disable
        self.bars: Dict[str, tqdm] = {}

    def __call__(self, event: ProgressEvent):
        handler = {
            EventKind.STARTED: self._on_started,
            EventKind.BATCH: self._on_batch,
            EventKind.COMPLETED: self._on_completed,
            EventKind.FAILED: self._on_failed,
        }[event.kind]
        handler(event)

    def _on_started(self, event: ProgressEvent):
        snapshot = event.snapshot
        if snapshot.total == 0:
            # Empty collections finish without reads; no bar needed
            return
        self.bars[snapshot.job_name] = tqdm(
            total=snapshot.total,
            desc=f"🚀 {snapshot.job_name}",
            unit="docs",
            unit_scale=True,
            ncols=120,
            bar_format='{desc}: {percentage:3.0f}%|{bar:25}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}] {postfix}',
            colour='blue',
            dynamic_ncols=True,
            leave=True,
            file=self.file,
            disable=self.disable
        )

    def _on_batch(self, event: ProgressEvent):
        bar = self.bars.get(event.job_name)
        if bar is None:
            return
        snapshot = event.snapshot
        if bar.total != snapshot.total:
            bar.total = snapshot.total
        bar.set_postfix_str(f"{snapshot.records_per_second:,.0f} docs/s | "
                            f"{snapshot.bytes_transferred / 1024 / 1024:.1f}MB")
        bar.update(snapshot.processed - bar.n)

    def _on_completed(self, event: ProgressEvent):
        bar = self.bars.pop(event.job_name, None)
        if bar is None:
            self._write(f"✅ {event.job_name}: empty collection, target cleared")
            return
        bar.update(event.snapshot.processed - bar.n)
        bar.set_description(f"✅ {event.job_name}")
        bar.close()

    def _on_failed(self, event: ProgressEvent):
        bar = self.bars.pop(event.job_name, None)
        if bar is None:
            # Empty collection, or never started because the run was cancelled
            self._write(f"❌ {event.job_name}: {event.error}")
            return
        bar.set_description(f"❌ {event.job_name}")
        bar.close()

    def _write(self, message: str):
        if not self.disable:
            tqdm.write(message, file=self.file)

    def close_all(self):
        """Close any bars left open (e.g. after an interrupt)"""
        for bar in self.bars.values():
            bar.close()
        self.bars.clear()

    def print_summary_report(self, summary):
        """Print formatted summary report"""
        out = self.file
        print("\n" + "=" * 80, file=out)
        print("📊 DATABASE COPY SUMMARY REPORT", file=out)
        print("=" * 80, file=out)

        minutes, seconds = divmod(summary.elapsed, 60)
        print(f"\n⏱️  Total Time: {minutes:.0f}m {seconds:.1f}s", file=out)
        print(f"📄 Documents Copied: {summary.total_processed:,}", file=out)

        if summary.succeeded:
            print(f"\n✅ SUCCEEDED ({len(summary.succeeded)}):", file=out)
            for r in summary.succeeded:
                print(f"   • {r.name}: {r.processed:,} documents in {r.elapsed:.2f}s", file=out)

        if summary.failed:
            print(f"\n❌ FAILED ({len(summary.failed)}):", file=out)
            for r in summary.failed:
                print(f"   • {r.name}: {r.error}", file=out)

        print("\n" + "=" * 80, file=out)
        if summary.all_succeeded:
            print("✅ ALL COLLECTIONS COPIED SUCCESSFULLY!", file=out)
        else:
            print("⚠️  COPY FINISHED WITH FAILURES", file=out)
        print("=" * 80, file=out)
