"""
Offline storefront filter.

Runs saved product pages through the same pipeline the storefront script
uses: read page -> read bootstrap payload -> resolve gallery identities ->
apply visibility for the selected variant. Filtered pages are written to
the output directory, followed by a per-page report.

    python main.py                       # every data/*.html
    python main.py page.html --variant 4242
"""

import argparse
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from bootstrap import read_bootstrap
from gallery import SoupGallery
from page import parse_page
from resolution import FilterResult, GalleryFilter

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
OUTPUT_DIR = Path(__file__).parent / "output"


@dataclass
class PageReport:
    filename: str
    status: str  # "filtered", "no-payload", "disabled", "no-variant"
    variant_id: str | None = None
    mapping_key: str | None = None
    gallery_selector: str | None = None
    gallery_visible: int = 0
    gallery_hidden: int = 0
    thumbnails_visible: int = 0
    thumbnails_hidden: int = 0
    fail_closed: bool = False
    activated: bool = False
    elapsed: float = 0.0


def process_file(filepath: Path, variant_id: str | None = None, output_dir: Path = OUTPUT_DIR) -> PageReport:
    """Filter one saved page and write the result to ``output_dir``.

    ``variant_id`` simulates a variant change after the initial render.
    """
    t0 = time.monotonic()
    report = PageReport(filename=filepath.name, status="filtered")

    page = parse_page(filepath.read_text(encoding="utf-8"))
    payload = read_bootstrap(page.bootstrap_raw)
    if payload is None:
        logger.warning(f"{filepath.name}: no usable bootstrap payload, page left as is")
        report.status = "no-payload"
        report.elapsed = time.monotonic() - t0
        return report

    gallery = SoupGallery(page.soup)
    gallery_filter = GalleryFilter(gallery, payload)

    result: FilterResult | None = gallery_filter.start(page.current_variant_id)
    if not gallery_filter.enabled:
        report.status = "disabled"
    elif variant_id:
        result = gallery_filter.handle_variant_change(variant_id) or result

    if gallery_filter.enabled and result is None:
        report.status = "no-variant"

    if result is not None:
        report.variant_id = result.variant_id
        report.mapping_key = result.mapping_key
        report.gallery_selector = gallery.gallery_selector
        report.fail_closed = result.fail_closed
        report.activated = result.activated is not None
        for decision in result.decisions:
            if decision.thumbnail:
                report.thumbnails_visible += decision.visible
                report.thumbnails_hidden += not decision.visible
            else:
                report.gallery_visible += decision.visible
                report.gallery_hidden += not decision.visible

    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / filepath.name).write_text(gallery.html(), encoding="utf-8")

    report.elapsed = time.monotonic() - t0
    logger.info(
        f"{filepath.name}: {report.status} variant={report.variant_id} "
        f"gallery {report.gallery_visible}/{report.gallery_visible + report.gallery_hidden} visible"
    )
    return report


def print_report(reports: list[PageReport], wall_clock: float) -> None:
    print(f"\n{'='*70}")
    print("FILTER REPORT")
    print(f"{'='*70}")

    print(f"\n  {'File':<25} {'Status':<11} {'Variant':<14} {'Key':<12} {'Gallery':>9} {'Thumbs':>8}")
    print(f"  {'-'*83}")
    for r in reports:
        gallery = f"{r.gallery_visible}/{r.gallery_visible + r.gallery_hidden}"
        thumbs = f"{r.thumbnails_visible}/{r.thumbnails_visible + r.thumbnails_hidden}"
        print(f"  {r.filename:<25} {r.status:<11} {str(r.variant_id or '-'):<14} "
              f"{str(r.mapping_key or '-')[:12]:<12} {gallery:>9} {thumbs:>8}")

    fail_closed = [r.filename for r in reports if r.fail_closed]
    if fail_closed:
        print(f"\n  Unmapped selection, gallery hidden: {', '.join(fail_closed)}")
    activated = [r.filename for r in reports if r.activated]
    if activated:
        print(f"  Active slide moved to first visible: {', '.join(activated)}")

    print(f"\n  Pages: {len(reports)}   Wall clock: {wall_clock:.2f}s")
    print(f"{'='*70}")


def main(argv: list[str] | None = None) -> list[PageReport]:
    parser = argparse.ArgumentParser(description="Apply variant image filtering to saved product pages.")
    parser.add_argument("files", nargs="*", type=Path, help="HTML files (default: data/*.html)")
    parser.add_argument("--variant", help="variant id to select after the initial render")
    parser.add_argument("--output", type=Path, default=OUTPUT_DIR, help="directory for filtered pages")
    args = parser.parse_args(argv)

    files = args.files or sorted(DATA_DIR.glob("*.html"))
    logger.info(f"Found {len(files)} HTML files to process")

    t_wall_start = time.monotonic()
    reports: list[PageReport] = []
    for filepath in files:
        try:
            reports.append(process_file(filepath, args.variant, args.output))
        except OSError as e:
            logger.error(f"Failed to process {filepath}: {e}")
    wall_clock = time.monotonic() - t_wall_start

    print_report(reports, wall_clock)
    return reports


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    main()
