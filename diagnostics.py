"""
Diagnostic: run page parsing + identity resolution only (markup untouched).
Reports which gallery and thumbnail elements resolve to a catalog image
for each saved page, and which mapping values claim each image.
"""

from pathlib import Path

from bootstrap import read_bootstrap
from gallery import SoupGallery
from identity import FilenameIndex, base_filename
from page import parse_page
from resolution import MappingTable

DATA_DIR = Path(__file__).parent / "data"


def diagnose_file(filepath: Path) -> dict:
    html = filepath.read_text(encoding="utf-8")
    page = parse_page(html)
    payload = read_bootstrap(page.bootstrap_raw)

    report = {
        "file": filepath.name,
        "payload": payload is not None,
        "current_variant": page.current_variant_id,
        "gallery_selector": None,
        "elements": [],
        "unresolved": 0,
    }
    if payload is None:
        return report

    table = MappingTable.from_payload(payload.mapping)
    index = FilenameIndex(payload.image_urls)
    gallery = SoupGallery(page.soup)

    # image id -> mapping keys claiming it
    claimed_by: dict[str, list[str]] = {}
    for key, image_ids in (table.entries if table else {}).items():
        for image_id in image_ids:
            claimed_by.setdefault(image_id, []).append(key)

    items = gallery.find_items()
    report["gallery_selector"] = gallery.gallery_selector
    report["mapping_mode"] = table.mode if table else None
    report["option_name"] = table.option_name if table else None
    report["catalog_images"] = len(payload.image_urls)
    report["indexed_filenames"] = len(index)

    for kind, elements in (("gallery", items), ("thumb", gallery.find_thumbnails())):
        for element in elements:
            src = gallery.get_image_src(element)
            image_id = index.resolve(src)
            if image_id is None:
                report["unresolved"] += 1
            report["elements"].append(
                {
                    "kind": kind,
                    "filename": base_filename(src) or "(no img)",
                    "image_id": image_id,
                    "claimed_by": claimed_by.get(image_id, []) if image_id else [],
                }
            )

    return report


def main():
    html_files = sorted(DATA_DIR.glob("*.html"))
    print(f"Diagnosing {len(html_files)} files (identity resolution only, markup untouched)\n")

    all_reports = []
    for filepath in html_files:
        report = diagnose_file(filepath)
        all_reports.append(report)

        print(f"{'=' * 70}")
        print(f"  {report['file']}")
        print(f"{'=' * 70}")

        if not report["payload"]:
            print("  No usable script#variant-image-data payload\n")
            continue

        print(
            f"  Mapping: {report['mapping_mode']} ({report['option_name'] or '-'}) | "
            f"{report['catalog_images']} catalog images | "
            f"gallery selector: {report['gallery_selector'] or 'NONE MATCHED'} | "
            f"current variant: {report['current_variant'] or '-'}"
        )

        for el in report["elements"]:
            if el["image_id"] is None:
                status = "UNRESOLVED"
            elif el["claimed_by"]:
                status = ", ".join(el["claimed_by"])
            else:
                status = "unassigned"
            print(f"    {el['kind']:<8} {el['filename'][:40]:<42} {str(el['image_id'] or '-'):<16} {status}")

        print()

    # Summary table
    print(f"\n{'=' * 70}")
    print("SUMMARY")
    print(f"{'=' * 70}")
    print(f"{'File':<30} {'Payload':<9} {'Elements':>9} {'Unresolved':>11}")
    print("-" * 62)
    for r in all_reports:
        print(f"{r['file'][:28]:<30} {'OK' if r['payload'] else 'MISSING':<9} {len(r['elements']):>9} {r['unresolved']:>11}")


if __name__ == "__main__":
    main()
