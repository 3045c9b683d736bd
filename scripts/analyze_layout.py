#!/usr/bin/env python3
"""Run a layout analysis on a local PDF and print the results.

Usage:
    python scripts/analyze_layout.py <pdf_path> [--preset resume] [--json]
    python scripts/analyze_layout.py <pdf_path> --text-only

Outputs the document tree preview and element counts for manual
verification of analysis quality.
"""

import argparse
import json
import sys
from pathlib import Path

from pdf_layout_server.layout import (
    LayoutAnalyzer,
    count_by_type,
    count_elements,
    export_tree_as_json,
    extract_pdf_text,
    get_generation_client,
    get_preset,
    print_document_tree,
)


def main():
    parser = argparse.ArgumentParser(description="Analyze the layout of a PDF")
    parser.add_argument("pdf_path", help="Path to PDF file")
    parser.add_argument("--preset", default=None, help="Extraction preset name")
    parser.add_argument("--provider", choices=["anthropic", "openai"], default=None)
    parser.add_argument("--json", action="store_true", help="Print the tree as JSON")
    parser.add_argument(
        "--text-only",
        action="store_true",
        help="Print the text layer sent to the model and exit (no model call)",
    )
    args = parser.parse_args()

    pdf_path = Path(args.pdf_path)
    if not pdf_path.exists():
        print(f"Error: File not found: {pdf_path}")
        sys.exit(1)

    pdf_bytes = pdf_path.read_bytes()

    if args.text_only:
        print(extract_pdf_text(pdf_bytes).render())
        return

    schema = instructions = None
    if args.preset:
        preset = get_preset(args.preset)
        schema, instructions = preset.schema, preset.instructions

    print(f"Analyzing: {pdf_path}")
    print("=" * 80)

    analyzer = LayoutAnalyzer(generation_client=get_generation_client(args.provider))
    result = analyzer.analyze(pdf_bytes, schema=schema, instructions=instructions)

    if not result.success:
        print(f"Analysis failed ({result.error_type}): {result.error}")
        sys.exit(1)

    tree = result.document_tree
    print(f"Pages: {result.page_count}")
    print(f"Tree source: {result.tree_source}{' (degraded)' if result.degraded else ''}")
    print(f"Total elements: {count_elements(tree)}")
    for node_type, count in sorted(count_by_type(tree).items()):
        print(f"  {node_type}: {count}")
    print("=" * 80)

    print(export_tree_as_json(tree) if args.json else print_document_tree(tree))

    if result.data is not None:
        print("\n" + "=" * 80)
        print(f"Extracted data ({result.data_source}):")
        print(json.dumps(result.data, indent=2, ensure_ascii=False))

    report = result.extraction_report
    if report is not None and not report.valid:
        print("\nSchema check:")
        for field_path in report.missing_fields:
            print(f"  missing: {field_path}")
        for problem in report.invalid_fields:
            print(f"  invalid: {problem}")

    print("\n" + "=" * 80)
    print("Analysis complete.")


if __name__ == "__main__":
    main()
